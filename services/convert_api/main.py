"""OGA Convert Service - Convert API FastAPI application.

Single conversion endpoint: POST /convert takes the raw bytes of an OGA
file as the request body and responds with the MP3 produced by ffmpeg.
Errors are returned as plain text.

Run with:
    python -m services.convert_api
    uvicorn services.convert_api.main:app  # uses the same env settings
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import anyio
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect

from app import __version__
from app.config import Settings
from app.schemas import HealthResponse
from app.utils.paths import orphan_artifact_patterns
from app.utils.scratch_io import cleanup_orphan_scratch_files
from services.convert_api.service import (
    BAD_REQUEST_CODES,
    BodyUnreadableError,
    ConversionError,
    ConversionErrorCode,
    TempDirError,
    convert_oga_to_mp3,
    prepare_temp_dir,
)

logger = logging.getLogger(__name__)


# --- Lifespan ---


def _cleanup_orphan_artifacts_safe(settings: Settings) -> None:
    """Remove artifacts left behind by a previous process (best-effort).

    Never crashes startup.
    """
    try:
        removed = cleanup_orphan_scratch_files(settings.temp_dir, orphan_artifact_patterns())
        if removed > 0:
            logger.info("Startup cleanup: removed %d orphan temp files", removed)
    except Exception:
        logger.warning("Startup cleanup failed (non-fatal)", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Creates the temp directory (fatal on failure), sweeps orphan
    artifacts and sizes the transcode limiter.
    """
    settings: Settings = app.state.settings

    try:
        prepare_temp_dir(settings)
    except TempDirError as e:
        raise RuntimeError(e.message) from e

    _cleanup_orphan_artifacts_safe(settings)

    # Created on the serving event loop; 0 means unbounded
    if settings.max_concurrent_transcodes > 0:
        app.state.transcode_limiter = anyio.Semaphore(settings.max_concurrent_transcodes)
    else:
        app.state.transcode_limiter = None

    logger.info("Server started on port %s", settings.port)
    yield


# --- Error Handling ---


def error_code_to_status(error_code: str) -> int:
    """Map error codes to HTTP status codes.

    - EMPTY_BODY, BODY_UNREADABLE -> 400
    - everything else -> 500
    """
    if error_code in BAD_REQUEST_CODES:
        return 400
    return 500


def make_error_response(error_code: str, error_message: str) -> PlainTextResponse:
    """Create a plain-text error response."""
    return PlainTextResponse(error_message, status_code=error_code_to_status(error_code))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    """Render framework errors (405, 404) as plain text."""
    return PlainTextResponse(
        str(exc.detail),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


# --- FastAPI App ---


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Service settings (defaults to Settings.from_env()).

    Returns:
        Configured FastAPI app with /convert and /health routes.
    """
    if settings is None:
        settings = Settings.from_env()

    app = FastAPI(
        title="OGA Convert Service",
        description="Converts uploaded OGA audio to MP3 using ffmpeg.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.transcode_limiter = None
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    @app.post(
        "/convert",
        response_class=StreamingResponse,
        responses={
            200: {"content": {"audio/mpeg": {}}, "description": "Converted MP3"},
            400: {"content": {"text/plain": {}}, "description": "Empty or unreadable body"},
            500: {"content": {"text/plain": {}}, "description": "Conversion failed"},
        },
        summary="Convert OGA to MP3",
        description="Send the raw OGA bytes as the request body; receive an MP3 download.",
    )
    async def convert(request: Request):
        try:
            try:
                body = await request.body()
            except ClientDisconnect as e:
                raise BodyUnreadableError("client disconnected") from e

            # Waiters park on the event loop, not on a threadpool worker
            limiter = app.state.transcode_limiter
            if limiter is not None:
                async with limiter:
                    converted = await run_in_threadpool(convert_oga_to_mp3, settings, body)
            else:
                converted = await run_in_threadpool(convert_oga_to_mp3, settings, body)
        except ConversionError as e:
            if error_code_to_status(e.error_code) >= 500:
                logger.error("Conversion failed: %s", e)
            else:
                logger.info("Rejected conversion request: %s", e)
            return make_error_response(e.error_code, e.message)
        except Exception:
            # Log full exception server-side, return generic message to client
            logger.exception("Unexpected error during conversion")
            return make_error_response(
                ConversionErrorCode.CONVERSION_FAILED,
                "An unexpected error occurred during conversion",
            )

        return StreamingResponse(
            converted.iter_chunks(),
            media_type=converted.media_type,
            headers=converted.headers(),
            background=BackgroundTask(converted.close),
        )

    @app.get("/health", response_model=HealthResponse, summary="Health check")
    def health_check() -> HealthResponse:
        """Simple health check endpoint."""
        return HealthResponse(status="ok")

    return app


app = create_app()
