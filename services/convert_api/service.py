"""OGA Convert Service - Conversion service logic.

Owns the full lifecycle of one conversion request:
1. Validate the body (non-empty)
2. Ensure the scratch directory exists
3. Stage the body to input_<token>.oga
4. Run ffmpeg to produce output_<token>.mp3
5. Open + stat the output for streaming
6. Stream the output, then remove both artifacts

Every failure after step 2 removes whatever artifacts may exist before the
error propagates. On success, artifact removal is owned by ConvertedAudio
and happens once streaming finishes or is abandoned.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from app.config import OUTPUT_MEDIA_TYPE, STREAM_CHUNK_SIZE, Settings
from app.transcoder import TranscodeResult, transcode_to_mp3
from app.utils.paths import ArtifactPaths, new_artifact_paths
from app.utils.scratch_io import ensure_directory, remove_quietly, write_scratch_file

if TYPE_CHECKING:
    from typing import BinaryIO

logger = logging.getLogger(__name__)


# --- Error Codes ---


class ConversionErrorCode(StrEnum):
    """Error codes for the conversion lifecycle."""

    EMPTY_BODY = "EMPTY_BODY"
    BODY_UNREADABLE = "BODY_UNREADABLE"
    TEMP_DIR_FAILED = "TEMP_DIR_FAILED"
    STAGING_FAILED = "STAGING_FAILED"
    TRANSCODE_FAILED = "TRANSCODE_FAILED"
    OUTPUT_OPEN_FAILED = "OUTPUT_OPEN_FAILED"
    OUTPUT_STAT_FAILED = "OUTPUT_STAT_FAILED"
    CONVERSION_FAILED = "CONVERSION_FAILED"


BAD_REQUEST_CODES = frozenset(
    {
        ConversionErrorCode.EMPTY_BODY,
        ConversionErrorCode.BODY_UNREADABLE,
    }
)


class ConversionError(Exception):
    """Base exception for conversion errors."""

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"{error_code}: {message}")


class BadRequestError(ConversionError):
    """The request body cannot be converted."""


class EmptyBodyError(BadRequestError):
    def __init__(self):
        super().__init__(ConversionErrorCode.EMPTY_BODY, "Request body is empty")


class BodyUnreadableError(BadRequestError):
    def __init__(self, reason: str):
        super().__init__(
            ConversionErrorCode.BODY_UNREADABLE,
            f"Error reading request body: {reason}",
        )


class InternalConversionError(ConversionError):
    """Server-side failure while converting."""


class TempDirError(InternalConversionError):
    def __init__(self, path: str, reason: str):
        super().__init__(
            ConversionErrorCode.TEMP_DIR_FAILED,
            f"Error creating temp directory {path}: {reason}",
        )


class StagingError(InternalConversionError):
    def __init__(self, reason: str):
        super().__init__(
            ConversionErrorCode.STAGING_FAILED,
            f"Error saving temp file: {reason}",
        )


class TranscodeFailedError(InternalConversionError):
    """ffmpeg failed; the message embeds its diagnostic output."""

    def __init__(self, result: TranscodeResult):
        self.result = result
        super().__init__(
            ConversionErrorCode.TRANSCODE_FAILED,
            f"Error converting with ffmpeg: {result.describe()}",
        )


class OutputOpenError(InternalConversionError):
    def __init__(self, reason: str):
        super().__init__(
            ConversionErrorCode.OUTPUT_OPEN_FAILED,
            f"Error opening converted file: {reason}",
        )


class OutputStatError(InternalConversionError):
    def __init__(self, reason: str):
        super().__init__(
            ConversionErrorCode.OUTPUT_STAT_FAILED,
            f"Error reading converted file info: {reason}",
        )


# --- Result Types ---


@dataclass
class ConvertedAudio:
    """An open, stat'ed MP3 artifact ready to be streamed.

    Owns both artifacts of the request. close() releases the file handle and
    removes the artifacts; it is safe to call more than once.
    """

    paths: ArtifactPaths
    file: BinaryIO
    size: int
    media_type: str = OUTPUT_MEDIA_TYPE
    sent: int = 0
    _closed: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def download_filename(self) -> str:
        return self.paths.download_filename

    def headers(self) -> dict[str, str]:
        """Response headers for the download."""
        return {
            "Content-Disposition": f"attachment; filename={self.download_filename}",
            "Content-Length": str(self.size),
        }

    def iter_chunks(self, chunk_size: int = STREAM_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the MP3 bytes, then close and clean up.

        Read errors are logged and end the stream early; the response status
        is already committed at this point so nothing is raised.
        """
        try:
            while True:
                try:
                    chunk = self.file.read(chunk_size)
                except (OSError, ValueError) as e:
                    logger.error("Error sending file to client: %s", e)
                    break
                if not chunk:
                    break
                self.sent += len(chunk)
                yield chunk
        finally:
            if self.sent < self.size:
                logger.warning(
                    "Streaming of %s ended after %d of %d bytes",
                    self.paths.output_path,
                    self.sent,
                    self.size,
                )
            self.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        try:
            self.file.close()
        except OSError as e:
            logger.warning("Failed to close %s: %s", self.paths.output_path, e)
        remove_quietly(*self.paths.all())
        if self.sent == self.size:
            logger.info("Conversion completed. Temp file: %s", self.paths.output_path)
        else:
            logger.info("Cleaned up artifacts of incomplete stream: %s", self.paths.output_path)


# --- Conversion Service ---


def prepare_temp_dir(settings: Settings) -> None:
    """Ensure the scratch directory exists.

    Raises:
        TempDirError: If the directory cannot be created.
    """
    try:
        ensure_directory(settings.temp_dir)
    except OSError as e:
        raise TempDirError(str(settings.temp_dir), str(e)) from e


def convert_oga_to_mp3(
    settings: Settings,
    body: bytes,
) -> ConvertedAudio:
    """Convert an OGA request body to an MP3 ready for streaming.

    Blocks for the full duration of the ffmpeg run. Callers bound the
    number of concurrent conversions themselves.

    Args:
        settings: Service settings (temp dir, ffmpeg binary, timeout).
        body: Raw request body.

    Returns:
        ConvertedAudio owning the open output file and both artifacts.
        The caller must consume iter_chunks() or call close().

    Raises:
        EmptyBodyError: If body is empty (no files are created).
        TempDirError: If the scratch directory cannot be created.
        StagingError: If the body cannot be written to disk.
        TranscodeFailedError: If ffmpeg fails, times out, or cannot run.
        OutputOpenError: If the produced MP3 cannot be opened.
        OutputStatError: If the produced MP3 cannot be stat'ed.
    """
    # 1. Validate
    if not body:
        raise EmptyBodyError()

    logger.info("Received file of %d bytes", len(body))

    # 2. Scratch directory
    prepare_temp_dir(settings)

    # 3. Allocate unique artifact paths
    paths = new_artifact_paths(settings.temp_dir)

    # 4. Stage input (write_scratch_file removes partial files itself)
    try:
        write_scratch_file(paths.input_path, body)
    except OSError as e:
        raise StagingError(str(e)) from e

    # 5. Transcode
    try:
        result = transcode_to_mp3(
            paths.input_path,
            paths.output_path,
            ffmpeg_bin=settings.ffmpeg_bin,
            timeout_sec=settings.ffmpeg_timeout,
        )
    except BaseException:
        remove_quietly(*paths.all())
        raise

    if not result.ok:
        # ffmpeg may leave a partial output behind
        remove_quietly(*paths.all())
        raise TranscodeFailedError(result)

    # 6. Open output
    try:
        f = open(paths.output_path, "rb")  # noqa: SIM115
    except OSError as e:
        remove_quietly(*paths.all())
        raise OutputOpenError(str(e)) from e

    # 7. Stat output
    try:
        size = os.fstat(f.fileno()).st_size
    except OSError as e:
        f.close()
        remove_quietly(*paths.all())
        raise OutputStatError(str(e)) from e

    logger.debug(
        "Transcoded %s -> %s (%d bytes, %dms)",
        paths.input_path,
        paths.output_path,
        size,
        result.elapsed_ms,
    )

    return ConvertedAudio(paths=paths, file=f, size=size)
