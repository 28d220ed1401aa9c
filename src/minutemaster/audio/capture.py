"""
Audio capture functionality using pyaudiowpatch for Windows WASAPI support.

This module records a meeting from one or more microphones at once. Each
microphone is read on its own thread into its own WAV file; when recording
stops the tracks are mixed into the single file that is uploaded for
transcription.

Key features:
- Multi-microphone simultaneous recording with mono fallback
- Live elapsed-time counter and input level for the recording screen
- Supported sample rate detection per device
- Audio level detection for device testing
"""

import logging
import os
import sys
import threading
import time
import wave
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np

from .utils import categorize_devices, format_duration, mix_wav_files, pcm16_level, save_audio_array

# Platform-specific audio library import
if sys.platform == "win32":
    import pyaudiowpatch as pyaudio
else:
    import pyaudio

logger = logging.getLogger(__name__)

MIX_SAMPLE_RATE = 48000


class AudioCapture:
    """
    Query and test audio input devices.

    Supports listing microphones, probing sample rates and sampling the
    current input level of a device.
    """

    def __init__(self, frames_per_buffer: int = 1024):
        """
        Initialize audio capture.

        Args:
            frames_per_buffer: Buffer size for audio chunks
        """
        self.frames_per_buffer = frames_per_buffer

    def list_devices(self) -> List[Dict]:
        """
        List all available audio devices.

        Returns:
            List of device information dictionaries
        """
        pa = pyaudio.PyAudio()
        devices = []

        try:
            for i in range(pa.get_device_count()):
                info = pa.get_device_info_by_index(i)
                devices.append(
                    {
                        "index": i,
                        "name": info["name"],
                        "hostApi": info["hostApi"],
                        "maxInputChannels": info["maxInputChannels"],
                        "maxOutputChannels": info["maxOutputChannels"],
                        "defaultSampleRate": info["defaultSampleRate"],
                        "isLoopback": "loopback" in info["name"].lower(),
                    }
                )
        finally:
            pa.terminate()

        return devices

    def get_supported_sample_rate(self, device_index: int, channels: int, preferred_rate: int = 44100) -> int:
        """
        Find a supported sample rate for the device.

        Args:
            device_index: Audio device index
            channels: Number of channels to use
            preferred_rate: Preferred sample rate (default: 44100)

        Returns:
            Supported sample rate, or 44100 if none found
        """
        pa = pyaudio.PyAudio()

        # Try common sample rates in order of preference
        rates_to_try = list(dict.fromkeys([preferred_rate, 44100, 48000, 22050, 16000, 8000]))

        try:
            for rate in rates_to_try:
                try:
                    if pa.is_format_supported(
                        rate, input_device=device_index, input_channels=channels, input_format=pyaudio.paInt16
                    ):
                        return int(rate)
                except ValueError:
                    # PortAudio signals unsupported formats with ValueError
                    continue
        finally:
            pa.terminate()

        return 44100

    def get_audio_level(self, device_index: int, duration: float = 0.5) -> float:
        """
        Get the current audio level for a device.

        Args:
            device_index: Audio device index
            duration: Duration to sample in seconds

        Returns:
            Audio level (RMS) as float between 0 and 1
        """
        pa = pyaudio.PyAudio()

        try:
            device_info = pa.get_device_info_by_index(device_index)
            max_channels = int(device_info["maxInputChannels"])
            channels = max(1, min(max_channels, 2))
            rate = int(device_info["defaultSampleRate"])

            stream = pa.open(
                format=pyaudio.paInt16,
                channels=channels,
                rate=rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                input_device_index=device_index,
            )

            num_chunks = max(1, int(rate / self.frames_per_buffer * duration))
            frames = []
            try:
                for _ in range(num_chunks):
                    frames.append(stream.read(self.frames_per_buffer, exception_on_overflow=False))
            finally:
                stream.close()

            return pcm16_level(b"".join(frames)) if frames else 0.0

        except (OSError, IOError) as e:
            logger.warning(f"Could not sample level for device {device_index}: {e}")
            return 0.0
        finally:
            pa.terminate()


class _Track:
    """One microphone being recorded."""

    def __init__(self, device: Dict, stream, channels: int, rate: int, output_path: str):
        self.device = device
        self.stream = stream
        self.channels = channels
        self.rate = rate
        self.output_path = output_path
        self.frames: List[bytes] = []
        self.level = 0.0
        self.thread: Optional[threading.Thread] = None


class RecordingSession:
    """
    Record from several microphones until stopped, then mix to one file.

    Usage:
        session = RecordingSession(selected_devices, output_dir="recordings")
        session.start()
        ...  # poll session.format_elapsed() and session.level for the UI
        path = session.stop()
    """

    def __init__(
        self,
        devices: List[Dict],
        output_dir: str = "recordings",
        capture: Optional[AudioCapture] = None,
        frames_per_buffer: int = 1024,
        keep_tracks: bool = False,
    ):
        """
        Args:
            devices: Device dictionaries from AudioCapture.list_devices()
            output_dir: Directory for the per-microphone tracks and the mix
            capture: AudioCapture used to find a supported sample rate
            frames_per_buffer: Buffer size for audio chunks
            keep_tracks: Keep per-microphone WAV files after mixing
        """
        self.devices = list(devices)
        self.output_dir = output_dir
        self.capture = capture or AudioCapture(frames_per_buffer=frames_per_buffer)
        self.frames_per_buffer = frames_per_buffer
        self.keep_tracks = keep_tracks

        self._pa = None
        self._tracks: List[_Track] = []
        self._stop_event = threading.Event()
        self._start_time: Optional[float] = None
        self._stop_time: Optional[float] = None
        self._timestamp = ""

    @property
    def is_recording(self) -> bool:
        return self._start_time is not None and self._stop_time is None

    @property
    def elapsed(self) -> float:
        """Seconds recorded so far (frozen once stopped)."""
        if self._start_time is None:
            return 0.0
        end = self._stop_time if self._stop_time is not None else time.time()
        return end - self._start_time

    def format_elapsed(self) -> str:
        return format_duration(self.elapsed)

    @property
    def level(self) -> float:
        """Latest input level averaged over all microphones."""
        if not self._tracks:
            return 0.0
        return float(np.mean([track.level for track in self._tracks]))

    @property
    def device_names(self) -> List[str]:
        return [track.device["name"] for track in self._tracks]

    def start(self) -> None:
        """
        Open every selected microphone and start recording.

        Raises:
            ValueError: If no microphone is selected or none could be opened
            RuntimeError: If the session is already recording
        """
        if not self.devices:
            raise ValueError("Please select at least one microphone")
        if self.is_recording:
            raise RuntimeError("Recording already in progress")

        os.makedirs(self.output_dir, exist_ok=True)
        self._timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._stop_event.clear()
        self._pa = pyaudio.PyAudio()
        self._tracks = []

        for i, device in enumerate(self.devices):
            track = self._open_track(i, device)
            if track is not None:
                self._tracks.append(track)

        if not self._tracks:
            self._pa.terminate()
            self._pa = None
            raise ValueError("None of the selected microphones could be opened")

        self._start_time = time.time()
        self._stop_time = None

        for track in self._tracks:
            track.thread = threading.Thread(target=self._record_thread, args=(track,), daemon=True)
            track.thread.start()

        logger.info(f"Recording started with {len(self._tracks)} microphone(s)")

    def _open_track(self, position: int, device: Dict) -> Optional[_Track]:
        max_channels = int(device.get("maxInputChannels", 1) or 1)
        channels = 2 if max_channels >= 2 else 1
        rate = self.capture.get_supported_sample_rate(
            device["index"], channels, int(device.get("defaultSampleRate", 44100) or 44100)
        )

        safe_name = "".join(c if c.isalnum() or c in ("-", "_") else "_" for c in device["name"])[:50]
        output_path = os.path.join(self.output_dir, f"{self._timestamp}_mic{position + 1}_{safe_name}.wav")

        for attempt_channels in dict.fromkeys([channels, 1]):
            try:
                stream = self._pa.open(
                    format=pyaudio.paInt16,
                    channels=attempt_channels,
                    rate=rate,
                    input=True,
                    input_device_index=device["index"],
                    frames_per_buffer=self.frames_per_buffer,
                )
                return _Track(device, stream, attempt_channels, rate, output_path)
            except (OSError, IOError) as e:
                logger.warning(f"Failed to open {device['name']} with {attempt_channels} channel(s): {e}")

        return None

    def _record_thread(self, track: _Track) -> None:
        """Read chunks from one stream until the stop event is set."""
        while not self._stop_event.is_set():
            try:
                data = track.stream.read(self.frames_per_buffer, exception_on_overflow=False)
            except (OSError, IOError) as e:
                logger.error(f"Recording error on {track.device['name']}: {e}")
                break
            track.frames.append(data)
            track.level = pcm16_level(data)

    def stop(self) -> str:
        """
        Stop recording, write each track and mix them into one WAV file.

        Returns:
            Path to the mixed recording

        Raises:
            RuntimeError: If the session was never started
        """
        if self._start_time is None:
            raise RuntimeError("Recording was not started")

        self._stop_event.set()
        self._stop_time = self._stop_time or time.time()

        for track in self._tracks:
            if track.thread is not None:
                track.thread.join(timeout=5.0)
            try:
                if track.stream.is_active():
                    track.stream.stop_stream()
                track.stream.close()
            except (OSError, IOError) as e:
                logger.warning(f"Error closing stream for {track.device['name']}: {e}")

        sample_width = self._pa.get_sample_size(pyaudio.paInt16) if self._pa else 2
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None

        track_paths = []
        for track in self._tracks:
            with wave.open(track.output_path, "wb") as wf:
                wf.setnchannels(track.channels)
                wf.setsampwidth(sample_width)
                wf.setframerate(track.rate)
                wf.writeframes(b"".join(track.frames))
            track_paths.append(track.output_path)

        mixed_path = os.path.join(self.output_dir, f"meeting-{self._timestamp}.wav")
        save_audio_array(mix_wav_files(track_paths, target_rate=MIX_SAMPLE_RATE), mixed_path, rate=MIX_SAMPLE_RATE)

        if not self.keep_tracks:
            for path in track_paths:
                if os.path.exists(path):
                    os.unlink(path)

        logger.info(f"Recording stopped after {self.format_elapsed()}, saved to {mixed_path}")
        return mixed_path
