"""OGA Convert Service - Core application modules.

Provides:
- Settings loaded once at startup (app.config)
- ffmpeg transcoder runner (app.transcoder)
- Core utilities: scratch_io, paths
"""

__version__ = "0.1.0"
