from datetime import date

from minutemaster.models import (
    NOT_SPECIFIED,
    ActionItem,
    MeetingExport,
    MeetingSummary,
    SegmentAnalysis,
    TranscriptLine,
    TranscriptSegment,
    Transcription,
    format_meeting_date,
    parse_participants,
)


def test_segment_duration_and_dict():
    seg = TranscriptSegment(start=1.5, end=4.0, text="Hello", id=3)
    assert seg.duration == 2.5
    assert TranscriptSegment.from_dict(seg.to_dict()) == seg


def test_transcription_from_api_dict():
    transcription = Transcription.from_dict(
        {"text": "Hello there", "segments": [{"start": "0", "end": 1.2, "text": " Hello there "}], "language": "en"}
    )
    assert transcription.segments[0].start == 0.0
    assert transcription.segments[0].text == "Hello there"
    assert transcription.language == "en"


def test_segment_analysis_defaults():
    analysis = SegmentAnalysis.from_dict({"segmentIndex": 2})
    assert analysis.is_work_related is True
    assert analysis.topic == "Unknown"


def test_segment_analysis_string_flag():
    assert SegmentAnalysis.from_dict({"segmentIndex": 0, "isWorkRelated": "false"}).is_work_related is False


def test_action_item_defaults():
    item = ActionItem.from_dict({"task": "Send report", "assignee": ""})
    assert item.assignee == NOT_SPECIFIED
    assert item.deadline == NOT_SPECIFIED


def test_meeting_summary_skips_malformed_entries():
    summary = MeetingSummary.from_dict(
        {"summary": "Short", "keyPoints": ["a", "", None], "actionItems": ["bad", {"task": "x"}], "topics": None}
    )
    assert summary.key_points == ["a"]
    assert [a.task for a in summary.action_items] == ["x"]
    assert summary.topics == []


def test_transcript_line_omits_empty_timestamp():
    assert TranscriptLine(speaker="Anna", text="Hi").to_dict() == {"speaker": "Anna", "text": "Hi"}


def test_meeting_export_titles_and_defaults():
    export = MeetingExport.from_dict({"date": "2024/05/01", "dateObject": "May 1, 2024"})
    assert export.title == "Meeting"
    assert export.summary_title == "2024/05/01 – Meeting – Summary"
    assert export.transcript_title == "2024/05/01 – Meeting – Transcript"
    assert export.export_formats == {"word": True, "pdf": False}


def test_meeting_export_round_trip():
    export = MeetingExport(
        title="Weekly sync",
        date="2024/05/01",
        date_object="May 1, 2024",
        participants=["Anna", "Tom"],
        summary="Summary",
        key_points=["Budget"],
        action_items=[ActionItem(task="Send report", assignee="Tom", deadline="Friday")],
        transcript_lines=[TranscriptLine(speaker="Anna", text="Hi", timestamp="00:00")],
    )
    assert MeetingExport.from_dict(export.to_dict()) == export


def test_format_meeting_date():
    assert format_meeting_date(date(2024, 5, 1)) == ("2024/05/01", "May 1, 2024")


def test_parse_participants():
    assert parse_participants("Anna\n\n  Tom  \n") == ["Anna", "Tom"]
    assert parse_participants(None) == []
