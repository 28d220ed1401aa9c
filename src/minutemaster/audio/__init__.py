"""
Audio and AI processing for meeting recordings.

This package turns a recording into the material for meeting minutes:
speech-to-text with timestamped segments, work-related/casual classification,
structured summaries and speaker assignment, all delegated to the OpenAI API.

Main components:
- AudioTranscriber: Speech-to-text via whisper-1 (verbose JSON segments)
- TranscriptAnalyzer: Segment classification and speaker-introduction detection
- MeetingSummarizer: Executive summary, key points, action items, topics
- SpeakerIdentifier and sample helpers: Speaker name assignment
- Utility functions: Formatting, mixing and level metering

Microphone recording (AudioCapture, RecordingSession) lives in
``minutemaster.audio.capture`` and needs PortAudio, so it is not imported here.

Example usage:
    from minutemaster.audio import AudioTranscriber, MeetingSummarizer

    transcription = AudioTranscriber(api_key=key).transcribe("meeting.wav")
    summary = MeetingSummarizer(api_key=key).summarize(transcription.text)
"""

from .analysis import TranscriptAnalyzer
from .conversion import ConversionError, clip_data_url, convert_to_mp3, extract_clip
from .llm import InvalidAPIKey, InvalidModelResponse, OpenAIService, ServiceUnavailable, validate_api_key
from .speakers import (
    SpeakerIdentifier,
    assign_speakers_from_samples,
    build_transcript_lines,
    select_speaker_samples,
    skip_speaker_assignment,
)
from .summarizer import MeetingSummarizer, build_filtered_transcript
from .transcription import AudioTranscriber
from .utils import (
    categorize_devices,
    format_duration,
    format_timestamp,
    get_audio_duration,
    get_audio_level,
    mix_wav_files,
    normalize_audio,
    save_audio_array,
)

__all__ = [
    "AudioTranscriber",
    "TranscriptAnalyzer",
    "MeetingSummarizer",
    "build_filtered_transcript",
    "SpeakerIdentifier",
    "assign_speakers_from_samples",
    "build_transcript_lines",
    "select_speaker_samples",
    "skip_speaker_assignment",
    "OpenAIService",
    "ServiceUnavailable",
    "InvalidAPIKey",
    "InvalidModelResponse",
    "validate_api_key",
    "ConversionError",
    "clip_data_url",
    "convert_to_mp3",
    "extract_clip",
    "categorize_devices",
    "format_duration",
    "format_timestamp",
    "get_audio_duration",
    "get_audio_level",
    "mix_wav_files",
    "normalize_audio",
    "save_audio_array",
]
