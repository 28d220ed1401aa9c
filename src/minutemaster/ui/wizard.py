"""
State machine behind the recording wizard.

The wizard is a linear sequence of steps. Moving back is always allowed;
moving forward requires every earlier step's result (login, validated key,
microphones, recording, reviewed segments with a summary). The Streamlit
app keeps one WizardState in its session state and renders the current step.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from ..audio import (
    assign_speakers_from_samples,
    build_filtered_transcript,
    build_transcript_lines,
    skip_speaker_assignment,
)
from ..models import (
    DEFAULT_TITLE,
    DetectedSpeaker,
    MeetingExport,
    MeetingSummary,
    SegmentAnalysis,
    SpeakerSample,
    TranscriptSegment,
    format_meeting_date,
    parse_participants,
)


class WizardStep(Enum):
    LOGIN = 1
    API_KEY = 2
    MICROPHONE = 3
    RECORDING = 4
    PROCESSING = 5
    SPEAKERS = 6
    EXPORT = 7

    @property
    def label(self) -> str:
        return STEP_LABELS[self]


STEP_LABELS = {
    WizardStep.LOGIN: "Sign in",
    WizardStep.API_KEY: "API key",
    WizardStep.MICROPHONE: "Microphones",
    WizardStep.RECORDING: "Record",
    WizardStep.PROCESSING: "Review",
    WizardStep.SPEAKERS: "Speakers",
    WizardStep.EXPORT: "Export",
}


class WizardError(Exception):
    """Raised when moving to a step whose prerequisites are not met."""


@dataclass
class WizardState:
    """Everything the wizard has collected so far."""

    require_auth: bool = True
    step: WizardStep = WizardStep.LOGIN

    authenticated: bool = False
    email: Optional[str] = None
    api_key_validated: bool = False
    selected_devices: List[int] = field(default_factory=list)

    recording_path: Optional[str] = None
    recording_id: Optional[str] = None
    audio_url: Optional[str] = None
    segments: List[TranscriptSegment] = field(default_factory=list)
    analysis: List[SegmentAnalysis] = field(default_factory=list)
    detected_speakers: List[DetectedSpeaker] = field(default_factory=list)
    selected_indices: Set[int] = field(default_factory=set)
    summary: Optional[MeetingSummary] = None

    samples: List[SpeakerSample] = field(default_factory=list)
    speaker_assignments: Dict[int, str] = field(default_factory=dict)

    def __post_init__(self):
        if not self.require_auth:
            self.authenticated = True
            if self.step == WizardStep.LOGIN:
                self.step = WizardStep.API_KEY

    @property
    def progress(self) -> float:
        """Fraction of the wizard completed, for the progress bar."""
        return self.step.value / len(WizardStep)

    def missing_requirement(self, step: WizardStep) -> Optional[str]:
        """Return why ``step`` cannot be entered yet, or None when it can."""
        if step.value <= self.step.value:
            return None

        if step.value > WizardStep.LOGIN.value and not self.authenticated:
            return "Please sign in first"
        if step.value > WizardStep.API_KEY.value and not self.api_key_validated:
            return "Please configure a valid OpenAI API key"
        if step.value > WizardStep.MICROPHONE.value and not self.selected_devices:
            return "Please select at least one microphone"
        if step.value > WizardStep.RECORDING.value and not (self.recording_path or self.recording_id):
            return "Please record a meeting first"
        if step.value > WizardStep.PROCESSING.value:
            if not self.selected_indices:
                return "Please select at least one segment"
            if self.summary is None:
                return "Please generate the summary first"
        return None

    def can_enter(self, step: WizardStep) -> bool:
        return self.missing_requirement(step) is None

    def go_to(self, step: WizardStep) -> None:
        reason = self.missing_requirement(step)
        if reason:
            raise WizardError(reason)
        self.step = step

    def next_step(self) -> None:
        if self.step == WizardStep.EXPORT:
            return
        self.go_to(WizardStep(self.step.value + 1))

    def previous_step(self) -> None:
        first = WizardStep.LOGIN if self.require_auth else WizardStep.API_KEY
        if self.step.value > first.value:
            self.step = WizardStep(self.step.value - 1)

    def login(self, email: str) -> None:
        self.authenticated = True
        self.email = email

    def logout(self) -> None:
        """Forget everything, including the login."""
        fresh = WizardState(require_auth=self.require_auth)
        self.__dict__.update(fresh.__dict__)

    def set_recording(self, path: str) -> None:
        self._clear_from_recording()
        self.recording_path = path

    def set_transcription(
        self, segments: Iterable[TranscriptSegment], recording_id: Optional[str] = None, audio_url: Optional[str] = None
    ) -> None:
        """Store new transcript segments, discarding any later results."""
        self._clear_results()
        self.segments = list(segments)
        self.recording_id = recording_id
        self.audio_url = audio_url

    def apply_analysis(
        self, analysis: Iterable[SegmentAnalysis], detected_speakers: Iterable[DetectedSpeaker] = ()
    ) -> None:
        """Store the classification and preselect the work-related segments."""
        self.analysis = list(analysis)
        self.detected_speakers = list(detected_speakers)
        self.selected_indices = {
            a.segment_index for a in self.analysis if a.is_work_related and 0 <= a.segment_index < len(self.segments)
        }
        self.summary = None

    def analysis_for(self, index: int) -> Optional[SegmentAnalysis]:
        for entry in self.analysis:
            if entry.segment_index == index:
                return entry
        return None

    def select_all(self) -> None:
        self.selected_indices = set(range(len(self.segments)))
        self.summary = None

    def select_none(self) -> None:
        self.selected_indices = set()
        self.summary = None

    def toggle_segment(self, index: int) -> bool:
        """Flip the selection of one segment and return whether it is now selected."""
        if not 0 <= index < len(self.segments):
            raise IndexError(f"Segment index out of range: {index}")

        self.summary = None
        if index in self.selected_indices:
            self.selected_indices.discard(index)
            return False
        self.selected_indices.add(index)
        return True

    def filtered_transcript(self) -> str:
        return build_filtered_transcript(self.segments, self.selected_indices)

    def selected_segments_payload(self) -> List[Dict[str, Any]]:
        """Selected segments as API dicts, each carrying its originalIndex."""
        payload = []
        for idx in sorted(self.selected_indices):
            data = self.segments[idx].to_dict()
            data["originalIndex"] = idx
            payload.append(data)
        return payload

    def set_summary(self, summary: MeetingSummary) -> None:
        self.summary = summary
        self.samples = []
        self.speaker_assignments = {}

    def assign_from_samples(self, names: Dict[int, str]) -> Dict[int, str]:
        """Name every selected segment after the nearest labelled sample."""
        self.speaker_assignments = assign_speakers_from_samples(
            self.segments, self.selected_indices, self.samples, names
        )
        return self.speaker_assignments

    def apply_speaker_map(self, speaker_map: Dict[int, str]) -> None:
        self.speaker_assignments = {idx: name for idx, name in speaker_map.items() if idx in self.selected_indices}

    def skip_speakers(self) -> None:
        self.speaker_assignments = skip_speaker_assignment(self.selected_indices)

    def build_export(
        self,
        title: str = "",
        meeting_date: Optional[date] = None,
        participants: str = "",
        export_formats: Optional[Dict[str, bool]] = None,
    ) -> MeetingExport:
        """
        Assemble the document payload from the wizard results.

        Args:
            title: Meeting title ("Meeting" when blank)
            meeting_date: Meeting date (today when omitted)
            participants: Textarea value, one participant per line
            export_formats: {"word": bool, "pdf": bool}

        Raises:
            WizardError: If no summary has been generated yet
        """
        if self.summary is None:
            raise WizardError("Please generate the summary first")

        short_date, long_date = format_meeting_date(meeting_date or date.today())
        assignments = self.speaker_assignments or skip_speaker_assignment(self.selected_indices)
        formats = {"word": True, "pdf": False}
        formats.update(export_formats or {})

        return MeetingExport(
            title=title.strip() or DEFAULT_TITLE,
            date=short_date,
            date_object=long_date,
            participants=parse_participants(participants),
            summary=self.summary.summary,
            key_points=list(self.summary.key_points),
            topics=list(self.summary.topics),
            action_items=list(self.summary.action_items),
            transcript_lines=build_transcript_lines(self.segments, self.selected_indices, assignments),
            export_formats=formats,
        )

    def reset(self) -> None:
        """Start a new meeting, keeping the login, key and microphones."""
        self._clear_from_recording()
        self.step = WizardStep.RECORDING if self.selected_devices else WizardStep.MICROPHONE
        if not self.api_key_validated:
            self.step = WizardStep.API_KEY

    def _clear_from_recording(self) -> None:
        self.recording_path = None
        self.recording_id = None
        self.audio_url = None
        self.segments = []
        self._clear_results()

    def _clear_results(self) -> None:
        self.analysis = []
        self.detected_speakers = []
        self.selected_indices = set()
        self.summary = None
        self.samples = []
        self.speaker_assignments = {}
