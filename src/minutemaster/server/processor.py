"""
Meeting processing stages: transcription, analysis and summarization.

This module contains the logic that moves a recording through the stages
the wizard asks for, recording stage and progress in the RecordingStore so
that a failed step can be inspected afterwards.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..audio import (
    AudioTranscriber,
    MeetingSummarizer,
    SpeakerIdentifier,
    TranscriptAnalyzer,
    build_filtered_transcript,
)
from ..models import DetectedSpeaker, MeetingSummary, SegmentAnalysis, TranscriptSegment, Transcription
from .recordings import RecordingStage, RecordingStore

logger = logging.getLogger(__name__)


@dataclass
class OpenAIServices:
    """The AI-backed services sharing one API key."""

    transcriber: AudioTranscriber
    analyzer: TranscriptAnalyzer
    summarizer: MeetingSummarizer
    identifier: SpeakerIdentifier

    @classmethod
    def from_api_key(
        cls,
        api_key: str,
        llm_model: str = "gpt-4",
        transcription_model: str = "whisper-1",
        base_url: Optional[str] = None,
        client=None,
    ) -> "OpenAIServices":
        """Build all services for one key; ``client`` is shared when given."""
        return cls(
            transcriber=AudioTranscriber(api_key=api_key, model=transcription_model, base_url=base_url, client=client),
            analyzer=TranscriptAnalyzer(api_key=api_key, model=llm_model, base_url=base_url, client=client),
            summarizer=MeetingSummarizer(api_key=api_key, model=llm_model, base_url=base_url, client=client),
            identifier=SpeakerIdentifier(api_key=api_key, model=llm_model, base_url=base_url, client=client),
        )


class MeetingProcessor:
    """Runs the processing stages for recordings held in a RecordingStore."""

    def __init__(self, recordings: RecordingStore, services: OpenAIServices):
        """
        Args:
            recordings: RecordingStore instance for state management
            services: OpenAI-backed services to call
        """
        self.recordings = recordings
        self.services = services

    def transcribe(self, recording_id: str) -> Transcription:
        """
        Transcribe a stored recording.

        Raises:
            RecordingNotFound: If the recording does not exist
        """
        audio_path = self.recordings.get_audio_path(recording_id)
        logger.info(f"Starting transcription for recording {recording_id}")

        self.recordings.update_stage(recording_id, RecordingStage.TRANSCRIBING)
        self.recordings.update_progress(recording_id, 10.0, "Transcribing audio...")

        try:
            transcription = self.services.transcriber.transcribe(str(audio_path))
        except Exception as e:
            logger.error(f"Transcription failed for recording {recording_id}: {e}")
            self.recordings.save_error(recording_id, str(e))
            raise

        self.recordings.save_transcription(recording_id, transcription.to_dict())
        self.recordings.update_progress(recording_id, 50.0, "Transcription completed")
        logger.info(f"Transcription completed for recording {recording_id}: {len(transcription.segments)} segments")
        return transcription

    def analyze(
        self, segments: Sequence[TranscriptSegment], recording_id: Optional[str] = None
    ) -> Tuple[List[SegmentAnalysis], List[DetectedSpeaker]]:
        """
        Classify segments and look for speaker introductions.

        Speaker detection is best effort; classification errors propagate.
        """
        analysis = self.services.analyzer.classify_segments(segments)
        detected = self.services.analyzer.detect_speakers(segments)

        if recording_id and self.recordings.recording_exists(recording_id):
            self.recordings.save_analysis(
                recording_id,
                {
                    "analysis": [a.to_dict() for a in analysis],
                    "detectedSpeakers": [d.to_dict() for d in detected],
                },
            )
            self.recordings.update_progress(recording_id, 80.0, "Analysis completed")

        return analysis, detected

    def summarize(self, filtered_transcript: str, recording_id: Optional[str] = None) -> MeetingSummary:
        """Generate structured minutes from the selected transcript text."""
        summary = self.services.summarizer.summarize(filtered_transcript)

        if recording_id and self.recordings.recording_exists(recording_id):
            self.recordings.save_summary(recording_id, summary.to_dict())
            self.recordings.update_progress(recording_id, 100.0, "Summary generated")

        return summary

    def process_recording(self, recording_id: str) -> Tuple[Transcription, List[SegmentAnalysis], MeetingSummary]:
        """
        Run every stage with the model's own segment selection.

        Used for unattended processing (no user review): all segments the
        model marks as work-related go into the summary.

        Returns:
            Tuple of (transcription, analysis, summary)
        """
        start_time = time.time()

        transcription = self.transcribe(recording_id)
        analysis, _ = self.analyze(transcription.segments, recording_id)

        selected = [a.segment_index for a in analysis if a.is_work_related]
        filtered = build_filtered_transcript(transcription.segments, selected)
        if not filtered.strip():
            # Nothing classified as work: summarize everything rather than nothing
            filtered = build_filtered_transcript(transcription.segments, range(len(transcription.segments)))

        summary = self.summarize(filtered, recording_id)

        logger.info(f"Recording {recording_id} processed in {time.time() - start_time:.2f} seconds")
        return transcription, analysis, summary
