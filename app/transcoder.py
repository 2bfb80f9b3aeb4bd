"""OGA Convert Service - ffmpeg transcoder runner.

Runs ffmpeg as a synchronous subprocess to turn an input audio file into
an MP3. The transcoder is a black box: input path in, output path out,
exit code and stderr text are the only observable contract.

Dependencies:
- Requires ffmpeg (with libmp3lame) installed and in PATH, or configured
  via OGA2MP3_FFMPEG_BIN

Error codes:
- TRANSCODER_EXITED: ffmpeg returned a non-zero exit status
- TRANSCODER_TIMEOUT: ffmpeg did not finish within the configured timeout
- TRANSCODER_NOT_FOUND: ffmpeg binary could not be executed
- TRANSCODER_OS_ERROR: process could not be spawned
"""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from app.config import DEFAULT_FFMPEG_BIN, MP3_CODEC, MP3_QUALITY

logger = logging.getLogger(__name__)


# --- Error Codes ---


class TranscodeErrorCode:
    """Error codes for the transcode step."""

    TRANSCODER_EXITED = "TRANSCODER_EXITED"
    TRANSCODER_TIMEOUT = "TRANSCODER_TIMEOUT"
    TRANSCODER_NOT_FOUND = "TRANSCODER_NOT_FOUND"
    TRANSCODER_OS_ERROR = "TRANSCODER_OS_ERROR"


# --- Result Types ---


@dataclass
class TranscodeResult:
    """Result of one ffmpeg invocation."""

    ok: bool
    error_code: str | None = None
    message: str | None = None
    returncode: int | None = None
    stderr: str = ""
    elapsed_ms: int = 0

    def describe(self) -> str:
        """Human-readable failure text, including ffmpeg diagnostics."""
        if self.ok:
            return "Transcode succeeded"
        parts = [self.message or self.error_code or "Transcode failed"]
        if self.stderr:
            parts.append(self.stderr.strip())
        return "\n".join(parts)


# --- ffmpeg Subprocess ---


def build_ffmpeg_command(
    input_path: str | Path,
    output_path: str | Path,
    ffmpeg_bin: str = DEFAULT_FFMPEG_BIN,
    codec: str = MP3_CODEC,
    quality: int = MP3_QUALITY,
) -> list[str]:
    """Build the ffmpeg argv for an MP3 transcode.

    -nostdin keeps ffmpeg from blocking on an interactive prompt and -y
    allows overwriting a stale output path.
    """
    return [
        ffmpeg_bin,
        "-nostdin",
        "-y",
        "-i",
        str(input_path),
        "-acodec",
        codec,
        "-q:a",
        str(quality),
        str(output_path),
    ]


def _decode_stderr(raw: bytes | str | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def transcode_to_mp3(
    input_path: str | Path,
    output_path: str | Path,
    *,
    ffmpeg_bin: str = DEFAULT_FFMPEG_BIN,
    quality: int = MP3_QUALITY,
    timeout_sec: float | None = None,
) -> TranscodeResult:
    """Transcode an audio file to MP3 using ffmpeg.

    Blocks until ffmpeg exits. Never raises for transcoder failures; the
    outcome is reported through the returned TranscodeResult.

    Args:
        input_path: Path to the staged input file.
        output_path: Path ffmpeg should write the MP3 to.
        ffmpeg_bin: ffmpeg executable name or path.
        quality: libmp3lame VBR quality (0 best .. 9 worst).
        timeout_sec: Kill ffmpeg after this many seconds (None = wait forever).

    Returns:
        TranscodeResult with success/failure status and captured stderr.
    """
    cmd = build_ffmpeg_command(input_path, output_path, ffmpeg_bin=ffmpeg_bin, quality=quality)
    start = time.monotonic()

    try:
        result = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            check=False,
            timeout=timeout_sec,
        )
    except subprocess.TimeoutExpired as e:
        logger.error("ffmpeg timed out after %s seconds for %s", timeout_sec, input_path)
        return TranscodeResult(
            ok=False,
            error_code=TranscodeErrorCode.TRANSCODER_TIMEOUT,
            message=f"ffmpeg timed out after {timeout_sec} seconds",
            stderr=_decode_stderr(e.stderr),
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
    except FileNotFoundError:
        logger.error("ffmpeg not found: %s", ffmpeg_bin)
        return TranscodeResult(
            ok=False,
            error_code=TranscodeErrorCode.TRANSCODER_NOT_FOUND,
            message=f"ffmpeg executable not found: {ffmpeg_bin}",
        )
    except OSError as e:
        logger.error("ffmpeg execution failed: %s", e)
        return TranscodeResult(
            ok=False,
            error_code=TranscodeErrorCode.TRANSCODER_OS_ERROR,
            message=f"ffmpeg execution failed: {e}",
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stderr = _decode_stderr(result.stderr)

    if result.returncode != 0:
        logger.error("ffmpeg exited with status %d for %s", result.returncode, input_path)
        return TranscodeResult(
            ok=False,
            error_code=TranscodeErrorCode.TRANSCODER_EXITED,
            message=f"ffmpeg exited with status {result.returncode}",
            returncode=result.returncode,
            stderr=stderr,
            elapsed_ms=elapsed_ms,
        )

    logger.debug("ffmpeg finished in %dms: %s -> %s", elapsed_ms, input_path, output_path)
    return TranscodeResult(
        ok=True,
        returncode=result.returncode,
        stderr=stderr,
        elapsed_ms=elapsed_ms,
    )
