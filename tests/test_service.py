"""Tests for the conversion service lifecycle (services/convert_api/service.py).

All tests mock ffmpeg subprocess calls to run without ffmpeg installed.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest import mock

import pytest

from app.config import Settings
from services.convert_api.service import (
    ConversionErrorCode,
    EmptyBodyError,
    OutputOpenError,
    OutputStatError,
    StagingError,
    TempDirError,
    TranscodeFailedError,
    convert_oga_to_mp3,
)
from tests.helpers import FAKE_MP3_HEADER, ffmpeg_paths, list_temp_files


class TestValidation:
    """Tests for body validation."""

    def test_empty_body_rejected_before_disk(self, settings, ffmpeg_ok):
        """Empty body should raise without creating the temp directory."""
        with pytest.raises(EmptyBodyError) as exc_info:
            convert_oga_to_mp3(settings, b"")

        assert exc_info.value.error_code == ConversionErrorCode.EMPTY_BODY
        assert not settings.temp_dir.exists()
        ffmpeg_ok.assert_not_called()


class TestLifecycle:
    """Tests for the happy path from staging to cleanup."""

    def test_converted_audio_streams_and_cleans_up(self, settings, ffmpeg_ok, sample_oga_bytes):
        """Consuming iter_chunks should yield the MP3 and remove both artifacts."""
        converted = convert_oga_to_mp3(settings, sample_oga_bytes)

        assert converted.paths.input_path.exists()
        assert converted.paths.output_path.exists()
        assert converted.size == len(FAKE_MP3_HEADER) + len(sample_oga_bytes)

        body = b"".join(converted.iter_chunks(chunk_size=1000))

        assert body == FAKE_MP3_HEADER + sample_oga_bytes
        assert converted.file.closed
        assert list_temp_files(settings.temp_dir) == []

    def test_headers(self, settings, ffmpeg_ok, sample_oga_bytes):
        """Headers should carry the download name and exact size."""
        with mock.patch("app.utils.paths.time.time", return_value=1712345678.2):
            converted = convert_oga_to_mp3(settings, sample_oga_bytes)

        try:
            assert converted.media_type == "audio/mpeg"
            assert converted.headers() == {
                "Content-Disposition": "attachment; filename=converted_1712345678.mp3",
                "Content-Length": str(converted.size),
            }
        finally:
            converted.close()

    def test_close_without_streaming_cleans_up(self, settings, ffmpeg_ok, sample_oga_bytes):
        """close() alone should release the file and remove artifacts."""
        converted = convert_oga_to_mp3(settings, sample_oga_bytes)

        converted.close()

        assert converted.file.closed
        assert list_temp_files(settings.temp_dir) == []

    def test_close_is_idempotent(self, settings, ffmpeg_ok, sample_oga_bytes):
        """Closing twice (stream end + background task) must be harmless."""
        converted = convert_oga_to_mp3(settings, sample_oga_bytes)

        list(converted.iter_chunks())
        converted.close()

        assert list_temp_files(settings.temp_dir) == []

    def test_abandoned_stream_cleans_up(self, settings, ffmpeg_ok, sample_oga_bytes):
        """Closing a partially consumed stream should still clean up."""
        converted = convert_oga_to_mp3(settings, sample_oga_bytes)

        chunks = converted.iter_chunks(chunk_size=16)
        next(chunks)
        chunks.close()

        assert converted.file.closed
        assert list_temp_files(settings.temp_dir) == []

    def test_read_error_while_streaming_is_not_raised(
        self, settings, ffmpeg_ok, sample_oga_bytes
    ):
        """Read errors after headers are committed are logged, not raised."""
        converted = convert_oga_to_mp3(settings, sample_oga_bytes)
        converted.file.close()

        assert list(converted.iter_chunks()) == []
        assert list_temp_files(settings.temp_dir) == []


class TestCompletionLogging:
    """Completion is only reported for fully streamed outputs."""

    LOGGER = "services.convert_api.service"

    def test_full_stream_logs_completion(self, settings, ffmpeg_ok, sample_oga_bytes, caplog):
        converted = convert_oga_to_mp3(settings, sample_oga_bytes)

        with caplog.at_level(logging.INFO, logger=self.LOGGER):
            list(converted.iter_chunks(chunk_size=16))

        assert converted.sent == converted.size
        assert "Conversion completed" in caplog.text
        assert "incomplete stream" not in caplog.text

    def test_abandoned_stream_does_not_log_completion(
        self, settings, ffmpeg_ok, sample_oga_bytes, caplog
    ):
        """A client that goes away mid-stream must not be logged as a success."""
        converted = convert_oga_to_mp3(settings, sample_oga_bytes)

        with caplog.at_level(logging.INFO, logger=self.LOGGER):
            chunks = converted.iter_chunks(chunk_size=16)
            next(chunks)
            chunks.close()

        assert converted.sent < converted.size
        assert "Cleaned up artifacts of incomplete stream" in caplog.text
        assert "Conversion completed" not in caplog.text
        assert list_temp_files(settings.temp_dir) == []

    def test_close_before_streaming_does_not_log_completion(
        self, settings, ffmpeg_ok, sample_oga_bytes, caplog
    ):
        converted = convert_oga_to_mp3(settings, sample_oga_bytes)

        with caplog.at_level(logging.INFO, logger=self.LOGGER):
            converted.close()

        assert "Conversion completed" not in caplog.text
        assert "Cleaned up artifacts of incomplete stream" in caplog.text


class TestFailureCleanup:
    """Every failure branch must leave the temp directory empty."""

    def test_temp_dir_failure(self, temp_dir, ffmpeg_ok):
        """A temp path occupied by a file should raise TempDirError."""
        temp_dir.parent.mkdir(parents=True, exist_ok=True)
        temp_dir.write_bytes(b"not a directory")

        with pytest.raises(TempDirError):
            convert_oga_to_mp3(Settings(temp_dir=temp_dir), b"OggS")

        ffmpeg_ok.assert_not_called()

    def test_staging_failure_removes_partial_input(self, settings, ffmpeg_ok):
        """A failed write should not leave the input behind."""
        with mock.patch(
            "app.utils.scratch_io.os.fsync",
            side_effect=OSError("I/O error"),
        ):
            with pytest.raises(StagingError) as exc_info:
                convert_oga_to_mp3(settings, b"OggS payload")

        assert "I/O error" in exc_info.value.message
        assert list_temp_files(settings.temp_dir) == []
        ffmpeg_ok.assert_not_called()

    def test_transcode_failure_removes_both(self, settings, ffmpeg_invalid):
        """Input and partial output should both be removed."""
        with pytest.raises(TranscodeFailedError) as exc_info:
            convert_oga_to_mp3(settings, b"garbage")

        assert exc_info.value.error_code == ConversionErrorCode.TRANSCODE_FAILED
        assert exc_info.value.result.returncode == 1
        assert "Invalid data found" in exc_info.value.message
        assert list_temp_files(settings.temp_dir) == []

    def test_output_open_failure(self, settings):
        """ffmpeg exiting 0 without output should raise OutputOpenError."""

        def no_output(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 0, stdout=None, stderr=b"")

        with mock.patch("app.transcoder.subprocess.run", side_effect=no_output):
            with pytest.raises(OutputOpenError):
                convert_oga_to_mp3(settings, b"OggS")

        assert list_temp_files(settings.temp_dir) == []

    def test_output_stat_failure(self, settings, ffmpeg_ok):
        """fstat failure should close the file and remove both artifacts."""
        with mock.patch(
            "services.convert_api.service.os.fstat",
            side_effect=OSError("stale file handle"),
        ):
            with pytest.raises(OutputStatError) as exc_info:
                convert_oga_to_mp3(settings, b"OggS")

        assert "stale file handle" in exc_info.value.message
        assert list_temp_files(settings.temp_dir) == []


class TestConcurrency:
    """Tests for concurrent requests sharing the temp directory."""

    def test_same_second_requests_do_not_collide(self, settings):
        """Concurrent requests in one second must each get their own output."""
        barrier = threading.Barrier(4)

        def slow_copy(cmd, **kwargs):
            input_path, output_path = ffmpeg_paths(cmd)
            # Make all four transcodes overlap
            barrier.wait(timeout=5)
            shutil.copyfile(input_path, output_path)
            return subprocess.CompletedProcess(cmd, 0, stdout=None, stderr=b"")

        def run(payload):
            converted = convert_oga_to_mp3(settings, payload)
            return b"".join(converted.iter_chunks())

        payloads = [f"request-{i}".encode() * 100 for i in range(4)]

        with (
            mock.patch("app.utils.paths.time.time", return_value=1700000000.0),
            mock.patch("app.transcoder.subprocess.run", side_effect=slow_copy),
            ThreadPoolExecutor(max_workers=4) as pool,
        ):
            results = list(pool.map(run, payloads))

        assert results == payloads
        assert list_temp_files(settings.temp_dir) == []
