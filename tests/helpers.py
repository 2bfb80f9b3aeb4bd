"""Test helpers: ffmpeg fakes and temp directory inspection.

ffmpeg is mocked at the subprocess.run level so the suite runs without
ffmpeg installed. The fakes honor the argv built by app.transcoder: the
input path follows "-i" and the output path is the last argument.
"""

import subprocess
from pathlib import Path

FAKE_MP3_HEADER = b"ID3\x04\x00\x00\x00\x00\x00\x00"
FFMPEG_INVALID_DATA = (
    b"[in#0 @ 0x55d5c1a0] Error opening input: Invalid data found when processing input\n"
    b"Error opening input file temp/input.oga.\n"
)


def ffmpeg_paths(cmd):
    """Return (input_path, output_path) from an ffmpeg argv."""
    return Path(cmd[cmd.index("-i") + 1]), Path(cmd[-1])


def fake_ffmpeg_success(cmd, **kwargs):
    """Pretend to transcode: output = fake MP3 header + input bytes."""
    input_path, output_path = ffmpeg_paths(cmd)
    output_path.write_bytes(FAKE_MP3_HEADER + input_path.read_bytes())
    return subprocess.CompletedProcess(cmd, 0, stdout=None, stderr=b"")


def fake_ffmpeg_invalid_input(cmd, **kwargs):
    """Pretend ffmpeg rejected the input, leaving a partial output behind."""
    _, output_path = ffmpeg_paths(cmd)
    output_path.write_bytes(b"partial")
    return subprocess.CompletedProcess(cmd, 1, stdout=None, stderr=FFMPEG_INVALID_DATA)


def list_temp_files(temp_dir):
    """Names of the files currently in the temp directory."""
    temp_dir = Path(temp_dir)
    if not temp_dir.exists():
        return []
    return sorted(p.name for p in temp_dir.iterdir())
