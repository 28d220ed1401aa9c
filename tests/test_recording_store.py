from unittest.mock import MagicMock

import pytest

from minutemaster.models import MeetingSummary, SegmentAnalysis, TranscriptSegment, Transcription
from minutemaster.server.processor import MeetingProcessor, OpenAIServices
from minutemaster.server.recordings import RecordingNotFound, RecordingStage, RecordingStore


@pytest.fixture
def store(tmp_path):
    return RecordingStore(str(tmp_path / "recordings"))


@pytest.fixture
def recording_id(store, tmp_path):
    upload = tmp_path / "upload.tmp"
    upload.write_bytes(b"audio data")
    return store.create_recording("meeting.webm", str(upload), {"source": "test"})


class TestRecordingStore:
    def test_create_moves_file(self, store, recording_id, tmp_path):
        assert not (tmp_path / "upload.tmp").exists()
        audio_path = store.get_audio_path(recording_id)
        assert audio_path.name == "audio.webm"
        assert audio_path.read_bytes() == b"audio data"

        metadata = store.get_metadata(recording_id)
        assert metadata["stage"] == RecordingStage.UPLOADED.value
        assert metadata["file_size"] == len(b"audio data")
        assert metadata["options"] == {"source": "test"}

    def test_stage_files(self, store, recording_id):
        store.save_transcription(recording_id, {"text": "hi"})
        assert store.get_transcription(recording_id) == {"text": "hi"}
        assert store.get_metadata(recording_id)["stage"] == "transcribed"

        store.save_summary(recording_id, {"summary": "s"})
        assert store.get_metadata(recording_id)["stage"] == "summarized"
        assert store.get_summary(recording_id) == {"summary": "s"}

    def test_error_marks_failed(self, store, recording_id):
        store.save_error(recording_id, "boom")
        metadata = store.get_metadata(recording_id)
        assert metadata["stage"] == "failed"
        assert metadata["error"] == "boom"

        store.update_stage(recording_id, RecordingStage.TRANSCRIBING)
        assert "error" not in store.get_metadata(recording_id)

    def test_progress(self, store, recording_id):
        store.update_progress(recording_id, 50.0, "Halfway")
        assert store.get_progress(recording_id)["message"] == "Halfway"

    @pytest.mark.parametrize("bad_id", ["../etc", "not-a-uuid", ""])
    def test_invalid_ids(self, store, bad_id):
        assert store.recording_exists(bad_id) is False
        assert store.get_metadata(bad_id) is None
        with pytest.raises(RecordingNotFound):
            store.get_audio_path(bad_id)

    def test_unknown_id(self, store):
        with pytest.raises(RecordingNotFound):
            store.get_audio_path("0" * 32)

    def test_list_and_delete(self, store, recording_id):
        assert [r["id"] for r in store.list_recordings()] == [recording_id]
        assert store.delete_recording(recording_id) is True
        assert store.delete_recording(recording_id) is False
        assert store.list_recordings() == []


def make_services():
    services = OpenAIServices(transcriber=MagicMock(), analyzer=MagicMock(), summarizer=MagicMock(), identifier=MagicMock())
    services.transcriber.transcribe.return_value = Transcription(
        text="Budget. Football.",
        segments=[
            TranscriptSegment(start=0.0, end=2.0, text="Budget.", id=0),
            TranscriptSegment(start=2.0, end=4.0, text="Football.", id=1),
        ],
    )
    services.analyzer.classify_segments.return_value = [
        SegmentAnalysis(segment_index=0, is_work_related=True, topic="Budget"),
        SegmentAnalysis(segment_index=1, is_work_related=False, topic="Sports"),
    ]
    services.analyzer.detect_speakers.return_value = []
    services.summarizer.summarize.return_value = MeetingSummary(summary="Budget discussed.")
    return services


class TestMeetingProcessor:
    def test_process_recording(self, store, recording_id):
        services = make_services()
        processor = MeetingProcessor(store, services)

        transcription, analysis, summary = processor.process_recording(recording_id)

        services.summarizer.summarize.assert_called_once_with("Budget.")
        assert summary.summary == "Budget discussed."
        assert store.get_transcription(recording_id)["text"] == "Budget. Football."
        assert store.get_analysis(recording_id)["analysis"][1]["isWorkRelated"] is False
        assert store.get_metadata(recording_id)["stage"] == "summarized"
        assert store.get_summary(recording_id)["summary"] == "Budget discussed."
        assert store.get_progress(recording_id)["progress"] == 100.0

    def test_nothing_work_related_summarizes_everything(self, store, recording_id):
        services = make_services()
        services.analyzer.classify_segments.return_value = [
            SegmentAnalysis(segment_index=0, is_work_related=False),
            SegmentAnalysis(segment_index=1, is_work_related=False),
        ]

        MeetingProcessor(store, services).process_recording(recording_id)

        services.summarizer.summarize.assert_called_once_with("Budget. Football.")

    def test_transcription_failure_is_recorded(self, store, recording_id):
        services = make_services()
        services.transcriber.transcribe.side_effect = RuntimeError("API down")

        with pytest.raises(RuntimeError):
            MeetingProcessor(store, services).transcribe(recording_id)

        metadata = store.get_metadata(recording_id)
        assert metadata["stage"] == "failed"
        assert metadata["error"] == "API down"

    def test_analyze_without_recording(self, store):
        services = make_services()
        analysis, detected = MeetingProcessor(store, services).analyze([TranscriptSegment(0, 1, "x")])
        assert len(analysis) == 2
        assert detected == []
