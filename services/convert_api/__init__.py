"""OGA Convert Service - Convert API service.

FastAPI service that converts an uploaded OGA file to MP3 via ffmpeg.
"""

__all__: list[str] = []
