"""OGA Convert Service - Pydantic models for API responses.

The conversion endpoint itself streams audio and returns plain-text
errors; only the JSON endpoints have models here.
"""

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for the health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(..., examples=["ok"], description="Service status")
