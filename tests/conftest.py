"""Shared pytest fixtures for OGA Convert Service tests."""

import tempfile
from pathlib import Path
from unittest import mock

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from services.convert_api.main import create_app
from tests.helpers import fake_ffmpeg_invalid_input, fake_ffmpeg_success


@pytest.fixture
def temp_dir():
    """Isolated scratch directory path (not yet created)."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "temp"


@pytest.fixture
def settings(temp_dir):
    """Settings pointing at the isolated scratch directory."""
    return Settings(temp_dir=temp_dir)


@pytest.fixture
def client(settings):
    """FastAPI test client for an app built with the test settings.

    Yields:
        tuple: (test_client, temp_dir)
    """
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client, settings.temp_dir


@pytest.fixture
def ffmpeg_ok():
    """Patch ffmpeg with a fake that always succeeds."""
    with mock.patch("app.transcoder.subprocess.run", side_effect=fake_ffmpeg_success) as m:
        yield m


@pytest.fixture
def ffmpeg_invalid():
    """Patch ffmpeg with a fake that rejects the input."""
    with mock.patch("app.transcoder.subprocess.run", side_effect=fake_ffmpeg_invalid_input) as m:
        yield m


@pytest.fixture
def sample_oga_bytes():
    """Bytes shaped like an Ogg stream (capture pattern + filler)."""
    return b"OggS\x00\x02" + bytes(range(256)) * 200
