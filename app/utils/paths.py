"""OGA Convert Service - Artifact path utilities.

Returns per-request artifact paths. Does NOT create directories.
Directory creation is the responsibility of the calling code.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from app.config import (
    DOWNLOAD_NAME_TEMPLATE,
    INPUT_PREFIX,
    INPUT_SUFFIX,
    OUTPUT_PREFIX,
    OUTPUT_SUFFIX,
)


@dataclass(frozen=True)
class ArtifactPaths:
    """Paths of the two temp files owned by one conversion request."""

    token: str
    timestamp: int
    input_path: Path
    output_path: Path

    @property
    def download_filename(self) -> str:
        """Filename suggested to the client in Content-Disposition."""
        return DOWNLOAD_NAME_TEMPLATE.format(timestamp=self.timestamp)

    def all(self) -> tuple[Path, Path]:
        return (self.input_path, self.output_path)


def generate_token() -> str:
    """Generate a unique artifact token.

    Uses UUID4 for uniqueness. Format: uuid4 hex (32 chars).
    """
    return uuid.uuid4().hex


def input_artifact_path(temp_dir: str | Path, token: str) -> Path:
    """Get the input artifact path.

    Args:
        temp_dir: Scratch directory.
        token: Per-request token.

    Returns:
        Path: {temp_dir}/input_{token}.oga
    """
    return Path(temp_dir) / f"{INPUT_PREFIX}{token}{INPUT_SUFFIX}"


def output_artifact_path(temp_dir: str | Path, token: str) -> Path:
    """Get the output artifact path.

    Args:
        temp_dir: Scratch directory.
        token: Per-request token.

    Returns:
        Path: {temp_dir}/output_{token}.mp3
    """
    return Path(temp_dir) / f"{OUTPUT_PREFIX}{token}{OUTPUT_SUFFIX}"


def new_artifact_paths(temp_dir: str | Path, timestamp: int | None = None) -> ArtifactPaths:
    """Allocate artifact paths for a new request.

    The token makes paths unique even for requests within the same second;
    the timestamp only feeds the download filename.

    Args:
        temp_dir: Scratch directory.
        timestamp: Unix timestamp in seconds (defaults to now).

    Returns:
        ArtifactPaths for the request.
    """
    if timestamp is None:
        timestamp = int(time.time())
    token = generate_token()
    return ArtifactPaths(
        token=token,
        timestamp=timestamp,
        input_path=input_artifact_path(temp_dir, token),
        output_path=output_artifact_path(temp_dir, token),
    )


def orphan_artifact_patterns() -> tuple[str, str]:
    """Glob patterns matching artifacts left behind by a crashed process."""
    return (f"{INPUT_PREFIX}*{INPUT_SUFFIX}", f"{OUTPUT_PREFIX}*{OUTPUT_SUFFIX}")
