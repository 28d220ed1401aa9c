import numpy as np
import pytest

from minutemaster.audio.utils import (
    categorize_devices,
    default_microphone,
    format_duration,
    format_timestamp,
    get_audio_duration,
    get_audio_level,
    mix_wav_files,
    normalize_audio,
    pcm16_level,
    save_audio_array,
)


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "00:00"), (65.9, "01:05"), (3599, "59:59"), (3600, "01:00:00"), (-3, "00:00")],
)
def test_format_timestamp(seconds, expected):
    assert format_timestamp(seconds) == expected


def test_format_duration():
    assert format_duration(0) == "00:00:00"
    assert format_duration(3725.4) == "01:02:05"


def test_categorize_devices():
    devices = [
        {"index": 0, "name": "Speakers", "maxInputChannels": 0, "maxOutputChannels": 2},
        {"index": 1, "name": "USB Mic", "maxInputChannels": 1, "maxOutputChannels": 0},
        {"index": 2, "name": "Speakers [Loopback]", "maxInputChannels": 2, "isLoopback": True},
    ]
    categorized = categorize_devices(devices)
    assert [d["index"] for d in categorized["input"]] == [1]
    assert [d["index"] for d in categorized["output"]] == [0]
    assert [d["index"] for d in categorized["loopback"]] == [2]


def test_default_microphone_prefers_array():
    devices = [
        {"index": 1, "name": "USB Mic", "maxInputChannels": 1},
        {"index": 2, "name": "Microphone Array (Realtek)", "maxInputChannels": 2},
    ]
    assert default_microphone(devices)["index"] == 2
    assert default_microphone([]) is None


def test_normalize_audio():
    assert np.allclose(normalize_audio(np.array([0.25, -0.5])), [0.5, -1.0])
    silence = np.zeros(4)
    assert np.array_equal(normalize_audio(silence), silence)


def test_audio_level():
    assert get_audio_level(np.array([])) == 0.0
    assert get_audio_level(np.array([0.5, -0.5])) == pytest.approx(0.5)


def test_pcm16_level():
    data = np.array([16384, -16384], dtype=np.int16).tobytes()
    assert pcm16_level(data) == pytest.approx(0.5)


def test_save_and_mix_wav_files(tmp_path):
    rate = 8000
    tone = 0.5 * np.sin(np.linspace(0, 2 * np.pi * 440, rate, dtype=np.float32))
    quiet = 0.1 * np.ones(rate // 2, dtype=np.float32)

    first = save_audio_array(tone, str(tmp_path / "a.wav"), rate=rate)
    second = save_audio_array(quiet, str(tmp_path / "b.wav"), rate=rate)
    assert get_audio_duration(first) == pytest.approx(1.0)

    mixed = mix_wav_files([first, second, str(tmp_path / "missing.wav")], target_rate=rate)
    assert len(mixed) == rate
    assert np.abs(mixed).max() == pytest.approx(1.0, abs=1e-3)


def test_mix_resamples_to_target_rate(tmp_path):
    path = save_audio_array(0.5 * np.ones(16000, dtype=np.float32), str(tmp_path / "a.wav"), rate=16000)
    assert len(mix_wav_files([path], target_rate=48000)) == 48000


def test_mix_without_files_returns_silence():
    mixed = mix_wav_files([], target_rate=100)
    assert len(mixed) == 100
    assert not mixed.any()
