"""
FFmpeg helpers for preparing audio for the transcription API and playback.

The transcription endpoint accepts a fixed set of containers and rejects
uploads above 25 MB. Browser recordings (webm/opus) and long WAV files are
therefore re-encoded to compact mono MP3 before upload. The same tool cuts
short clips used as speaker samples.
"""

import base64
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from ..config import ConfigManager

logger = logging.getLogger(__name__)

# Extensions accepted by the transcription endpoint as-is
SUPPORTED_EXTENSIONS = {"flac", "m4a", "mp3", "mp4", "mpeg", "mpga", "oga", "ogg", "wav", "webm"}

# Stay below the 25 MB API limit
MAX_UPLOAD_BYTES = 24 * 1024 * 1024


class ConversionError(Exception):
    """Raised when ffmpeg is missing or fails."""


def _ffmpeg() -> str:
    return ConfigManager.get("FFMPEG_BINARY") or "ffmpeg"


def _run(args, timeout: int = 600) -> subprocess.CompletedProcess:
    cmd = [_ffmpeg(), "-hide_banner", "-loglevel", "error", *args]
    try:
        result = subprocess.run(cmd, capture_output=True, timeout=timeout)
    except FileNotFoundError:
        raise ConversionError("Audio conversion tool (ffmpeg) not found on server.")
    except subprocess.TimeoutExpired:
        raise ConversionError(f"ffmpeg timed out after {timeout} seconds")

    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip() if result.stderr else ""
        raise ConversionError(f"ffmpeg failed: {stderr or f'exit code {result.returncode}'}")
    return result


def needs_conversion(path: str) -> bool:
    """Check whether a file must be re-encoded before it can be transcribed."""
    extension = Path(path).suffix.lower().lstrip(".")
    if extension not in SUPPORTED_EXTENSIONS:
        return True
    return os.path.getsize(path) > MAX_UPLOAD_BYTES


def convert_to_mp3(src: str, dst: Optional[str] = None, bitrate: str = "64k") -> str:
    """
    Re-encode audio as mono 16 kHz MP3.

    Args:
        src: Input audio file
        dst: Output path (default: temporary file, caller cleans up)
        bitrate: MP3 bitrate

    Returns:
        Path to the MP3 file
    """
    is_temp = dst is None
    if is_temp:
        fd, dst = tempfile.mkstemp(suffix=".mp3")
        os.close(fd)

    logger.info(f"Converting {Path(src).name} to MP3 ({bitrate})")
    try:
        _run(["-y", "-i", src, "-vn", "-ac", "1", "-ar", "16000", "-acodec", "libmp3lame", "-b:a", bitrate, dst])
    except ConversionError:
        if is_temp and os.path.exists(dst):
            os.unlink(dst)
        raise
    return dst


def extract_clip(src: str, start: float, end: float) -> bytes:
    """
    Cut [start, end) seconds out of an audio file.

    Returns:
        MP3-encoded clip bytes
    """
    start = max(0.0, float(start))
    end = float(end)
    if end <= start:
        raise ValueError("Clip end must be after start")

    result = _run(
        [
            "-ss", f"{start:.3f}",
            "-t", f"{end - start:.3f}",
            "-i", src,
            "-vn", "-ac", "1",
            "-acodec", "libmp3lame", "-b:a", "64k",
            "-f", "mp3", "pipe:1",
        ],
        timeout=120,
    )
    return result.stdout


def clip_data_url(clip: bytes, mime_type: str = "audio/mpeg") -> str:
    """Encode clip bytes as a data URL playable by an <audio> element."""
    return f"data:{mime_type};base64,{base64.b64encode(clip).decode('ascii')}"
