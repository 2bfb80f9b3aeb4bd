"""OGA Convert Service - Configuration.

Settings are read from the environment once at startup and handed to the
app factory as an explicit object. Request handling never reads os.environ.

Defaults reproduce the behavior of the original service:
- PORT=8080, listening on all interfaces
- ./temp as scratch directory
- no ffmpeg timeout, no concurrency limit
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

# Environment variable names
ENV_PORT = "PORT"
ENV_HOST = "OGA2MP3_HOST"
ENV_TEMP_DIR = "OGA2MP3_TEMP_DIR"
ENV_FFMPEG_BIN = "OGA2MP3_FFMPEG_BIN"
ENV_FFMPEG_TIMEOUT = "OGA2MP3_FFMPEG_TIMEOUT_SEC"
ENV_MAX_CONCURRENT = "OGA2MP3_MAX_CONCURRENT"
ENV_LOG_LEVEL = "OGA2MP3_LOG_LEVEL"

DEFAULT_PORT = 8080
DEFAULT_HOST = "0.0.0.0"
DEFAULT_TEMP_DIR = Path("./temp")
DEFAULT_FFMPEG_BIN = "ffmpeg"
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Transcode parameters (libmp3lame VBR, mid-range quality)
MP3_CODEC = "libmp3lame"
MP3_QUALITY = 2

# Artifact naming
INPUT_PREFIX = "input_"
INPUT_SUFFIX = ".oga"
OUTPUT_PREFIX = "output_"
OUTPUT_SUFFIX = ".mp3"
DOWNLOAD_NAME_TEMPLATE = "converted_{timestamp}.mp3"
OUTPUT_MEDIA_TYPE = "audio/mpeg"

# Chunk size used when streaming the converted file back
STREAM_CHUNK_SIZE = 65536


def _get_int(environ: Mapping[str, str], key: str, default: int, minimum: int = 0) -> int:
    """Read an integer from the environment.

    Invalid values or values below minimum fall back to the default.

    Args:
        environ: Environment mapping to read from.
        key: Variable name.
        default: Value used when unset or invalid.
        minimum: Smallest accepted value.

    Returns:
        The parsed integer.
    """
    env_val = environ.get(key)
    if env_val:
        try:
            value = int(env_val)
            if value >= minimum:
                return value
        except ValueError:
            pass
    return default


def _get_log_level(environ: Mapping[str, str]) -> str:
    level = (environ.get(ENV_LOG_LEVEL) or DEFAULT_LOG_LEVEL).upper()
    return level if level in LOG_LEVELS else DEFAULT_LOG_LEVEL


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the conversion service."""

    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    temp_dir: Path = DEFAULT_TEMP_DIR
    ffmpeg_bin: str = DEFAULT_FFMPEG_BIN
    # 0 disables the timeout
    ffmpeg_timeout_sec: int = 0
    # 0 means unbounded
    max_concurrent_transcodes: int = 0
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def ffmpeg_timeout(self) -> float | None:
        """Timeout to pass to subprocess.run, or None for no timeout."""
        return float(self.ffmpeg_timeout_sec) if self.ffmpeg_timeout_sec > 0 else None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ).

        Returns:
            A populated Settings instance.
        """
        if environ is None:
            environ = os.environ

        return cls(
            port=_get_int(environ, ENV_PORT, DEFAULT_PORT, minimum=1),
            host=environ.get(ENV_HOST) or DEFAULT_HOST,
            temp_dir=Path(environ.get(ENV_TEMP_DIR) or DEFAULT_TEMP_DIR),
            ffmpeg_bin=environ.get(ENV_FFMPEG_BIN) or DEFAULT_FFMPEG_BIN,
            ffmpeg_timeout_sec=_get_int(environ, ENV_FFMPEG_TIMEOUT, 0),
            max_concurrent_transcodes=_get_int(environ, ENV_MAX_CONCURRENT, 0),
            log_level=_get_log_level(environ),
        )
