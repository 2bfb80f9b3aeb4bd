"""Run the convert API with uvicorn.

Usage:
    PORT=8080 python -m services.convert_api
"""

from __future__ import annotations

import logging

import uvicorn

from app.config import Settings
from services.convert_api.main import create_app


def main() -> None:
    settings = Settings.from_env()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
