"""
Data models shared by the server, the client and the wizard.

Every model serialises to the camelCase JSON used on the HTTP API
(``to_dict``) and parses it back tolerantly (``from_dict``), filling
defaults for fields the language model or the browser left out.
"""

from dataclasses import dataclass, field
from datetime import date as date_type
from typing import Any, Dict, List, Optional, Tuple

UNKNOWN_SPEAKER = "Unknown Speaker"
NOT_SPECIFIED = "Not specified"
DEFAULT_TITLE = "Meeting"


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _int(value: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


@dataclass
class TranscriptSegment:
    """A single segment of transcribed audio with timing and speaker info."""

    start: float
    end: float
    text: str
    id: Optional[int] = None
    speaker: Optional[str] = None

    @property
    def duration(self) -> float:
        return max(0.0, self.end - self.start)

    def to_dict(self) -> Dict[str, Any]:
        data = {"start": self.start, "end": self.end, "text": self.text}
        if self.id is not None:
            data["id"] = self.id
        if self.speaker:
            data["speaker"] = self.speaker
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptSegment":
        return cls(
            start=_float(data.get("start")),
            end=_float(data.get("end")),
            text=_text(data.get("text")),
            id=_int(data.get("id")),
            speaker=data.get("speaker") or None,
        )


@dataclass
class Transcription:
    """Result of the speech-to-text call."""

    text: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    language: Optional[str] = None
    duration: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "segments": [s.to_dict() for s in self.segments],
            "language": self.language,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transcription":
        return cls(
            text=_text(data.get("text")),
            segments=[TranscriptSegment.from_dict(s) for s in data.get("segments") or []],
            language=data.get("language"),
            duration=_float(data.get("duration")) if data.get("duration") is not None else None,
        )


@dataclass
class SegmentAnalysis:
    """Work-related or casual label for one segment."""

    segment_index: int
    is_work_related: bool = True
    topic: str = "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {"segmentIndex": self.segment_index, "isWorkRelated": self.is_work_related, "topic": self.topic}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SegmentAnalysis":
        flag = data.get("isWorkRelated", True)
        if isinstance(flag, str):
            flag = flag.strip().lower() not in ("false", "no", "0")
        return cls(
            segment_index=_int(data.get("segmentIndex"), -1),
            is_work_related=bool(flag),
            topic=_text(data.get("topic"), "Unknown"),
        )


@dataclass
class DetectedSpeaker:
    """A speaker who introduced themselves in a given segment."""

    name: str
    segment_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "segmentIndex": self.segment_index}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectedSpeaker":
        return cls(name=_text(data.get("name")), segment_index=_int(data.get("segmentIndex"), -1))


@dataclass
class ActionItem:
    task: str
    assignee: str = NOT_SPECIFIED
    deadline: str = NOT_SPECIFIED

    def to_dict(self) -> Dict[str, Any]:
        return {"task": self.task, "assignee": self.assignee, "deadline": self.deadline}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionItem":
        return cls(
            task=_text(data.get("task")),
            assignee=_text(data.get("assignee"), NOT_SPECIFIED),
            deadline=_text(data.get("deadline"), NOT_SPECIFIED),
        )


@dataclass
class Topic:
    title: str
    content: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Topic":
        return cls(title=_text(data.get("title")), content=_text(data.get("content")))


@dataclass
class MeetingSummary:
    """Structured meeting minutes produced by the summarizer."""

    summary: str
    key_points: List[str] = field(default_factory=list)
    action_items: List[ActionItem] = field(default_factory=list)
    topics: List[Topic] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "keyPoints": list(self.key_points),
            "actionItems": [a.to_dict() for a in self.action_items],
            "topics": [t.to_dict() for t in self.topics],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeetingSummary":
        return cls(
            summary=_text(data.get("summary")),
            key_points=[_text(p) for p in data.get("keyPoints") or [] if _text(p)],
            action_items=[ActionItem.from_dict(a) for a in data.get("actionItems") or [] if isinstance(a, dict)],
            topics=[Topic.from_dict(t) for t in data.get("topics") or [] if isinstance(t, dict)],
        )


@dataclass
class SpeakerSample:
    """A short audio excerpt the user listens to when naming speakers."""

    sample_index: int
    segment_index: int
    start_time: float
    end_time: float
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sampleIndex": self.sample_index,
            "segmentIndex": self.segment_index,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpeakerSample":
        return cls(
            sample_index=_int(data.get("sampleIndex"), 0),
            segment_index=_int(data.get("segmentIndex"), -1),
            start_time=_float(data.get("startTime")),
            end_time=_float(data.get("endTime")),
            text=_text(data.get("text")),
        )


@dataclass
class TranscriptLine:
    speaker: str
    text: str
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"speaker": self.speaker, "text": self.text}
        if self.timestamp:
            data["timestamp"] = self.timestamp
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptLine":
        return cls(
            speaker=_text(data.get("speaker"), UNKNOWN_SPEAKER),
            text=_text(data.get("text")),
            timestamp=data.get("timestamp"),
        )


@dataclass
class MeetingExport:
    """Everything needed to render the summary and transcript documents."""

    title: str
    date: str
    date_object: str
    participants: List[str] = field(default_factory=list)
    summary: str = ""
    key_points: List[str] = field(default_factory=list)
    topics: List[Topic] = field(default_factory=list)
    action_items: List[ActionItem] = field(default_factory=list)
    transcript_lines: List[TranscriptLine] = field(default_factory=list)
    export_formats: Dict[str, bool] = field(default_factory=lambda: {"word": True, "pdf": False})

    @property
    def summary_title(self) -> str:
        return f"{self.date} – {self.title} – Summary"

    @property
    def transcript_title(self) -> str:
        return f"{self.date} – {self.title} – Transcript"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "date": self.date,
            "dateObject": self.date_object,
            "participants": list(self.participants),
            "summary": self.summary,
            "keyPoints": list(self.key_points),
            "topics": [t.to_dict() for t in self.topics],
            "actionItems": [a.to_dict() for a in self.action_items],
            "transcriptLines": [line.to_dict() for line in self.transcript_lines],
            "exportFormats": dict(self.export_formats),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeetingExport":
        formats = data.get("exportFormats") or {}
        return cls(
            title=_text(data.get("title"), DEFAULT_TITLE),
            date=_text(data.get("date")),
            date_object=_text(data.get("dateObject")),
            participants=[_text(p) for p in data.get("participants") or [] if _text(p)],
            summary=_text(data.get("summary")),
            key_points=[_text(p) for p in data.get("keyPoints") or [] if _text(p)],
            topics=[Topic.from_dict(t) for t in data.get("topics") or [] if isinstance(t, dict)],
            action_items=[ActionItem.from_dict(a) for a in data.get("actionItems") or [] if isinstance(a, dict)],
            transcript_lines=[
                TranscriptLine.from_dict(line) for line in data.get("transcriptLines") or [] if isinstance(line, dict)
            ],
            export_formats={"word": bool(formats.get("word", True)), "pdf": bool(formats.get("pdf", False))},
        )


def format_meeting_date(value: date_type) -> Tuple[str, str]:
    """
    Format a meeting date for document titles and headers.

    Returns:
        Tuple of ("yyyy/mm/dd", "Month D, YYYY")
    """
    short = f"{value.year:04d}/{value.month:02d}/{value.day:02d}"
    long = f"{value.strftime('%B')} {value.day}, {value.year}"
    return short, long


def parse_participants(text: Optional[str]) -> List[str]:
    """Split a textarea value into participant names, one per non-empty line."""
    if not text:
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]
