import os
import subprocess
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from minutemaster.audio import conversion
from minutemaster.audio.conversion import (
    ConversionError,
    clip_data_url,
    convert_to_mp3,
    extract_clip,
    needs_conversion,
)


def completed(returncode=0, stdout=b"", stderr=b""):
    return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)


def test_needs_conversion(tmp_path):
    webm = tmp_path / "a.webm"
    webm.write_bytes(b"x")
    wma = tmp_path / "a.wma"
    wma.write_bytes(b"x")

    assert needs_conversion(str(webm)) is False
    assert needs_conversion(str(wma)) is True


def test_large_files_need_conversion(tmp_path, monkeypatch):
    monkeypatch.setattr(conversion, "MAX_UPLOAD_BYTES", 4)
    wav = tmp_path / "a.wav"
    wav.write_bytes(b"12345")
    assert needs_conversion(str(wav)) is True


@patch("minutemaster.audio.conversion.subprocess.run")
def test_convert_to_mp3(mock_run, tmp_path):
    mock_run.return_value = completed()
    dst = str(tmp_path / "out.mp3")

    assert convert_to_mp3("in.wma", dst) == dst

    cmd = mock_run.call_args.args[0]
    assert cmd[cmd.index("-i") + 1] == "in.wma"
    assert cmd[-1] == dst
    assert "-ac" in cmd and cmd[cmd.index("-ac") + 1] == "1"


@patch("minutemaster.audio.conversion.subprocess.run")
def test_extract_clip(mock_run):
    mock_run.return_value = completed(stdout=b"mp3-bytes")

    assert extract_clip("audio.webm", 1.5, 4.0) == b"mp3-bytes"

    cmd = mock_run.call_args.args[0]
    assert cmd[cmd.index("-ss") + 1] == "1.500"
    assert cmd[cmd.index("-t") + 1] == "2.500"
    assert cmd[-1] == "pipe:1"


def test_extract_clip_rejects_empty_range():
    with pytest.raises(ValueError):
        extract_clip("audio.webm", 5.0, 5.0)


@patch("minutemaster.audio.conversion.subprocess.run", side_effect=FileNotFoundError())
def test_missing_ffmpeg(mock_run):
    with pytest.raises(ConversionError, match="not found"):
        extract_clip("audio.webm", 0.0, 1.0)


@patch("minutemaster.audio.conversion.subprocess.run")
def test_ffmpeg_failure(mock_run):
    mock_run.return_value = completed(returncode=1, stderr=b"Invalid data found")
    with pytest.raises(ConversionError, match="Invalid data found"):
        extract_clip("audio.webm", 0.0, 1.0)


@patch(
    "minutemaster.audio.conversion.subprocess.run",
    side_effect=subprocess.TimeoutExpired(cmd="ffmpeg", timeout=120),
)
def test_ffmpeg_timeout(mock_run):
    with pytest.raises(ConversionError, match="timed out"):
        extract_clip("audio.webm", 0.0, 1.0)


def test_clip_data_url():
    assert clip_data_url(b"abc") == "data:audio/mpeg;base64,YWJj"


@patch("minutemaster.audio.conversion.tempfile.mkstemp")
@patch("minutemaster.audio.conversion.subprocess.run")
def test_failed_conversion_removes_temp_file(mock_run, mock_mkstemp, tmp_path):
    temp_path = tmp_path / "tmp123.mp3"
    mock_mkstemp.return_value = (os.open(temp_path, os.O_CREAT | os.O_WRONLY), str(temp_path))
    mock_run.return_value = completed(returncode=1, stderr=b"Invalid data found when processing input")

    with pytest.raises(ConversionError, match="Invalid data"):
        convert_to_mp3("broken.webm")

    assert not temp_path.exists()
