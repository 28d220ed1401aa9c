"""
Utility functions for audio processing.

Helpers shared by the recorder and the server: time formatting, device
filtering, level metering and mixing of per-microphone WAV files into the
single recording that is sent for transcription.

Key features:
- Timestamp formatting for segment lists and the recording timer
- Input device filtering (microphones only, loopback devices excluded)
- Audio normalization and equal-weight mixing
- WAV file duration calculation
- Audio level (RMS) calculation for the live meter
"""

import os
import wave
from typing import Dict, List, Optional

import numpy as np


def format_timestamp(seconds: float) -> str:
    """
    Format seconds as MM:SS or HH:MM:SS.

    Args:
        seconds: Time in seconds

    Returns:
        Formatted time string
    """
    seconds = max(0.0, float(seconds))
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_duration(seconds: float) -> str:
    """Format elapsed recording time as HH:MM:SS."""
    seconds = max(0, int(seconds))
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"


def categorize_devices(devices: List[Dict]) -> Dict[str, List[Dict]]:
    """
    Categorize audio devices by type (input, output, loopback).

    Loopback devices are identified by name, input devices by
    maxInputChannels > 0, and output devices by maxOutputChannels > 0.

    Args:
        devices: List of device information dictionaries from AudioCapture.list_devices()

    Returns:
        Dictionary with keys 'input', 'output', 'loopback'
    """
    categorized = {"input": [], "output": [], "loopback": []}

    for device in devices:
        if device.get("isLoopback", False):
            categorized["loopback"].append(device)
        elif device.get("maxInputChannels", 0) > 0:
            categorized["input"].append(device)
        elif device.get("maxOutputChannels", 0) > 0:
            categorized["output"].append(device)

    return categorized


def default_microphone(devices: List[Dict]) -> Optional[Dict]:
    """Prefer a "Microphone Array" device, otherwise the first input device."""
    inputs = categorize_devices(devices)["input"]
    for device in inputs:
        if "microphone array" in device["name"].lower():
            return device
    return inputs[0] if inputs else None


def get_audio_duration(filepath: str) -> float:
    """Get duration of a WAV file in seconds."""
    with wave.open(filepath, "rb") as wf:
        frames = wf.getnframes()
        rate = wf.getframerate()
        return frames / float(rate)


def normalize_audio(audio: np.ndarray) -> np.ndarray:
    """Normalize audio to [-1, 1] range. Silence is returned unchanged."""
    if audio.size == 0:
        return audio
    max_val = np.abs(audio).max()
    if max_val > 0:
        return audio / max_val
    return audio


def _read_wav_mono(filepath: str, target_rate: int) -> np.ndarray:
    with wave.open(filepath, "rb") as wf:
        n_channels = wf.getnchannels()
        rate = wf.getframerate()
        n_frames = wf.getnframes()
        audio = np.frombuffer(wf.readframes(n_frames), dtype=np.int16)

    if n_channels > 1:
        usable = len(audio) - len(audio) % n_channels
        audio = audio[:usable].reshape(-1, n_channels).mean(axis=1)

    audio = audio.astype(np.float32) / 32768.0

    if rate != target_rate and len(audio) > 0:
        target_length = int(len(audio) / rate * target_rate)
        audio = np.interp(
            np.linspace(0, len(audio), target_length, endpoint=False, dtype=np.float32),
            np.arange(len(audio), dtype=np.float32),
            audio,
        ).astype(np.float32)

    return audio


def mix_wav_files(filepaths: List[str], target_rate: int = 48000) -> np.ndarray:
    """
    Mix multiple WAV files into a single mono stream with equal weighting.

    Each file is downmixed to mono, resampled to ``target_rate`` and
    normalized on its own so that a quiet microphone contributes as much
    as a loud one. Shorter streams are padded with silence, the streams are
    averaged and the result is normalized again.

    Args:
        filepaths: List of WAV file paths to mix (missing files are skipped)
        target_rate: Target sample rate for output (default: 48000 Hz)

    Returns:
        Mixed audio as numpy array (float32, normalized to [-1, 1])
    """
    streams = []
    for filepath in filepaths:
        filepath = os.path.normpath(filepath)
        if not os.path.exists(filepath):
            continue
        streams.append(normalize_audio(_read_wav_mono(filepath, target_rate)))

    if not streams:
        return np.zeros(target_rate, dtype=np.float32)

    max_length = max(len(audio) for audio in streams)
    mixed = np.zeros(max_length, dtype=np.float32)
    for audio in streams:
        mixed[: len(audio)] += audio
    mixed /= len(streams)

    return normalize_audio(mixed)


def save_audio_array(audio: np.ndarray, filepath: str, rate: int = 48000, channels: int = 1) -> str:
    """
    Save a float32 audio array in [-1, 1] as a 16-bit WAV file.

    Returns:
        The output path
    """
    audio_int = (np.clip(audio, -1.0, 1.0) * 32767).astype(np.int16)

    with wave.open(filepath, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(audio_int.tobytes())

    return filepath


def get_audio_level(audio: np.ndarray) -> float:
    """
    Calculate RMS (Root Mean Square) audio level.

    Args:
        audio: Audio array (any numeric type)

    Returns:
        RMS level as float (0.0 for empty input)
    """
    if audio.size == 0:
        return 0.0
    audio = audio.astype(np.float64)
    return float(np.sqrt(np.mean(audio**2)))


def pcm16_level(data: bytes) -> float:
    """RMS level in [0, 1] of a raw little-endian 16-bit PCM buffer."""
    samples = np.frombuffer(data, dtype=np.int16)
    return get_audio_level(samples.astype(np.float32) / 32768.0)
