import io
import os
from urllib.parse import quote
from unittest.mock import MagicMock, patch

import pytest
from flask import Flask
from flask.sessions import SecureCookieSessionInterface

from minutemaster.audio import InvalidAPIKey, InvalidModelResponse
from minutemaster.config import ConfigStore
from minutemaster.crypto import decrypt, encrypt
from minutemaster.models import DetectedSpeaker, MeetingSummary, SegmentAnalysis, TranscriptSegment, Transcription
from minutemaster.server import GLOBAL_OWNER, RecordingStore, ServerState, create_app
from minutemaster.server.auth import hash_password
from minutemaster.server.processor import OpenAIServices
from minutemaster.storage import LocalMeetingStore, LocalUserStore

SEGMENTS = [
    {"start": 0.0, "end": 4.0, "text": "Hi, I'm Anna.", "id": 0},
    {"start": 4.0, "end": 8.0, "text": "Nice weather today.", "id": 1},
    {"start": 45.0, "end": 50.0, "text": "Tom sends the report Friday.", "id": 2},
]


def make_services():
    services = OpenAIServices(transcriber=MagicMock(), analyzer=MagicMock(), summarizer=MagicMock(), identifier=MagicMock())
    services.transcriber.transcribe.return_value = Transcription(
        text="Hi, I'm Anna. Nice weather today. Tom sends the report Friday.",
        segments=[TranscriptSegment.from_dict(s) for s in SEGMENTS],
        language="english",
        duration=50.0,
    )
    services.analyzer.classify_segments.return_value = [
        SegmentAnalysis(0, True, "Introductions"),
        SegmentAnalysis(1, False, "Weather"),
        SegmentAnalysis(2, True, "Reports"),
    ]
    services.analyzer.detect_speakers.return_value = [DetectedSpeaker(name="Anna", segment_index=0)]
    services.summarizer.summarize.return_value = MeetingSummary(summary="Tom sends the report.")
    services.identifier.identify.return_value = {0: "Anna", 1: "Anna", 2: "Tom"}
    return services


class FakeBackend:
    """Records which keys were used to build services and validated."""

    def __init__(self):
        self.services = make_services()
        self.factory_keys = []
        self.validated_keys = []

    def factory(self, api_key):
        self.factory_keys.append(api_key)
        return self.services

    def validator(self, api_key):
        self.validated_keys.append(api_key)
        if api_key == "sk-bad":
            raise InvalidAPIKey("Incorrect API key provided")
        return True


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def state(tmp_path, backend):
    return ServerState(
        users=LocalUserStore(str(tmp_path / "users.json")),
        meetings=LocalMeetingStore(str(tmp_path / "output")),
        recordings=RecordingStore(str(tmp_path / "recordings")),
        config_store=ConfigStore(str(tmp_path / "config.json")),
        services_factory=backend.factory,
        key_validator=backend.validator,
    )


def build_client(state, require_auth, **overrides):
    config = {"TESTING": True, "SECRET_KEY": "test", "REQUIRE_AUTH": require_auth, "OPENAI_API_KEY": ""}
    config.update(overrides)
    return create_app(config, state=state).test_client()


@pytest.fixture
def client(state):
    """Client for a server with authentication disabled."""
    return build_client(state, require_auth=False)


@pytest.fixture
def auth_client(state):
    return build_client(state, require_auth=True)


@pytest.fixture
def user_id(state):
    return state.users.create_user("anna@example.com", hash_password("secret", rounds=4))


def login(client, email="anna@example.com", password="secret"):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def upload(client, name="meeting.webm", data=b"fake audio"):
    return client.post(
        "/api/transcribe", data={"audio": (io.BytesIO(data), name)}, content_type="multipart/form-data"
    )


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json["status"] == "ok"
    assert response.json["firebaseConfigured"] is False
    assert "timestamp" in response.json


def test_unknown_api_route_is_json(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json["success"] is False


class TestAuth:
    def test_routes_require_login(self, auth_client):
        response = auth_client.get("/api/check-config")
        assert response.status_code == 401
        assert response.json == {"success": False, "error": "Authentication required"}

    def test_login_rejects_bad_password(self, auth_client, user_id):
        response = login(auth_client, password="wrong")
        assert response.status_code == 401
        assert response.json["error"] == "Invalid email or password"

    def test_login_unknown_user(self, auth_client):
        assert login(auth_client, email="nobody@example.com").status_code == 401

    def test_login_requires_fields(self, auth_client):
        assert auth_client.post("/api/auth/login", json={"email": "anna@example.com"}).status_code == 400

    def test_login_and_status(self, auth_client, state, user_id):
        response = login(auth_client, email="ANNA@example.com")
        assert response.status_code == 200
        assert response.json == {"success": True, "email": "anna@example.com", "hasApiKey": False}
        assert state.users.get_user("anna@example.com")["lastLogin"] is not None

        status = auth_client.get("/api/auth/status").json
        assert status["authenticated"] is True
        assert status["email"] == "anna@example.com"

        auth_client.post("/api/auth/logout")
        assert auth_client.get("/api/auth/status").json["authenticated"] is False

    def test_login_restores_saved_key(self, auth_client, state, backend, user_id):
        state.users.set_encrypted_api_key(user_id, encrypt("sk-saved"))

        response = login(auth_client)

        assert response.json["hasApiKey"] is True
        assert backend.factory_keys == ["sk-saved"]
        assert state.get_services(user_id) is backend.services

    def test_logout_clears_services(self, auth_client, state, user_id):
        state.users.set_encrypted_api_key(user_id, encrypt("sk-saved"))
        login(auth_client)
        auth_client.post("/api/auth/logout")
        assert state.get_services(user_id) is None

    def test_missing_secret_key_gets_random_key(self, state, user_id):
        config = {"TESTING": True, "SECRET_KEY": "", "REQUIRE_AUTH": True, "OPENAI_API_KEY": ""}
        app = create_app(config, state=state)
        other = create_app(dict(config), state=state)

        assert len(app.secret_key) == 64
        assert app.secret_key != other.secret_key

        session_data = {"user_id": user_id, "email": "anna@example.com"}
        forger = Flask("forger")
        forger.secret_key = "minutemaster-dev-secret"
        forged = SecureCookieSessionInterface().get_signing_serializer(forger).dumps(session_data)
        client = app.test_client()
        client.set_cookie("session", forged)
        assert client.get("/api/auth/status").json["authenticated"] is False

        genuine = SecureCookieSessionInterface().get_signing_serializer(app).dumps(session_data)
        client.set_cookie("session", genuine)
        assert client.get("/api/auth/status").json["authenticated"] is True

    def test_status_without_auth(self, client):
        assert client.get("/api/auth/status").json["authenticated"] is True


class TestOpenAIConfig:
    def test_check_config_without_key(self, client):
        response = client.get("/api/check-config")
        assert response.json == {"success": True, "hasApiKey": False, "isInitialized": False}

    def test_init_rejects_invalid_key(self, client, state):
        response = client.post("/api/init-openai", json={"apiKey": "sk-bad"})
        assert response.status_code == 400
        assert "Invalid API key" in response.json["error"]
        assert state.get_services(GLOBAL_OWNER) is None

    def test_init_requires_key(self, client):
        assert client.post("/api/init-openai", json={}).status_code == 400

    def test_init_and_save_to_config_file(self, client, state):
        response = client.post("/api/init-openai", json={"apiKey": "sk-good", "saveKey": True})

        assert response.json == {"success": True, "saved": True}
        assert decrypt(state.config_store.get_encrypted_api_key()) == "sk-good"
        assert client.get("/api/check-config").json == {"success": True, "hasApiKey": True, "isInitialized": True}

    def test_init_without_saving(self, client, state):
        response = client.post("/api/init-openai", json={"apiKey": "sk-good"})
        assert response.json["saved"] is False
        assert state.config_store.get_encrypted_api_key() is None

    def test_saved_key_goes_to_user_record(self, auth_client, state, user_id):
        login(auth_client)
        auth_client.post("/api/init-openai", json={"apiKey": "sk-good", "saveKey": True})

        assert decrypt(state.users.get_encrypted_api_key(user_id)) == "sk-good"
        assert state.config_store.get_encrypted_api_key() is None

    def test_saved_config_key_is_restored(self, client, state, backend):
        state.config_store.set_encrypted_api_key(encrypt("sk-saved"))

        response = client.get("/api/check-config")

        assert response.json["isInitialized"] is True
        assert backend.factory_keys == ["sk-saved"]

    def test_environment_key_at_startup(self, state, backend):
        client = build_client(state, require_auth=False, OPENAI_API_KEY="sk-env")
        assert backend.factory_keys == ["sk-env"]
        assert client.get("/api/check-config").json["isInitialized"] is True


class TestTranscribe:
    def test_requires_openai(self, client):
        response = upload(client)
        assert response.status_code == 400
        assert response.json["error"] == "OpenAI not initialized"

    def test_requires_file(self, client, state):
        state.init_services(GLOBAL_OWNER, "sk-good")
        response = client.post("/api/transcribe", data={}, content_type="multipart/form-data")
        assert response.status_code == 400
        assert response.json["error"] == "No audio file uploaded"

    def test_rejects_unknown_type(self, client, state):
        state.init_services(GLOBAL_OWNER, "sk-good")
        assert upload(client, name="notes.txt").status_code == 400

    def test_rejects_empty_file(self, client, state):
        state.init_services(GLOBAL_OWNER, "sk-good")
        assert upload(client, data=b"").status_code == 400

    def test_transcribe(self, client, state, backend):
        state.init_services(GLOBAL_OWNER, "sk-good")

        response = upload(client)

        assert response.status_code == 200
        body = response.json
        assert body["success"] is True
        assert len(body["transcription"]["segments"]) == 3
        assert body["audioUrl"] is None
        recording_id = body["audioFilePath"]
        assert state.recordings.get_audio_path(recording_id).read_bytes() == b"fake audio"
        assert state.recordings.get_metadata(recording_id)["stage"] == "transcribed"

    def test_transcription_failure(self, client, state, backend):
        state.init_services(GLOBAL_OWNER, "sk-good")
        backend.services.transcriber.transcribe.side_effect = RuntimeError("Audio file is too short")

        response = upload(client)

        assert response.status_code == 500
        assert response.json == {"success": False, "error": "Audio file is too short"}


class TestAnalysisAndSummary:
    @pytest.fixture(autouse=True)
    def services(self, state):
        state.init_services(GLOBAL_OWNER, "sk-good")

    def test_analyze(self, client):
        response = client.post("/api/analyze-transcript", json={"segments": SEGMENTS})
        body = response.json
        assert response.status_code == 200
        assert [a["isWorkRelated"] for a in body["analysis"]] == [True, False, True]
        assert body["detectedSpeakers"] == [{"name": "Anna", "segmentIndex": 0}]

    def test_analyze_requires_segments(self, client):
        response = client.post("/api/analyze-transcript", json={})
        assert response.status_code == 400
        assert response.json["error"] == "segments must be a list"

    def test_summary(self, client, backend):
        response = client.post("/api/generate-summary", json={"filteredTranscript": "Tom sends the report."})
        assert response.json["summary"]["summary"] == "Tom sends the report."
        backend.services.summarizer.summarize.assert_called_once_with("Tom sends the report.")

    def test_summary_requires_text(self, client):
        assert client.post("/api/generate-summary", json={"filteredTranscript": "  "}).status_code == 400

    def test_identify_speakers(self, client, backend):
        response = client.post("/api/identify-speakers", json={"segments": SEGMENTS, "voiceLabels": {"0": "Anna"}})

        assert response.json["speakerMap"] == [
            {"segmentIndex": 0, "speaker": "Anna"},
            {"segmentIndex": 1, "speaker": "Anna"},
            {"segmentIndex": 2, "speaker": "Tom"},
        ]
        labels = backend.services.identifier.identify.call_args.args[1]
        assert labels == {0: "Anna"}

    def test_identify_speakers_bad_labels(self, client):
        response = client.post("/api/identify-speakers", json={"segments": SEGMENTS, "voiceLabels": {"x": "Anna"}})
        assert response.status_code == 400


class TestSpeakerSamples:
    @pytest.fixture
    def recording_id(self, client, state):
        state.init_services(GLOBAL_OWNER, "sk-good")
        return upload(client).json["audioFilePath"]

    def test_snippets(self, client, recording_id):
        segments = [dict(SEGMENTS[0], originalIndex=0), dict(SEGMENTS[2], originalIndex=2)]

        response = client.post(
            "/api/extract-speaker-snippets", json={"audioPath": recording_id, "segments": segments}
        )

        samples = response.json["speakerSamples"]
        assert [s["segmentIndex"] for s in samples] == [0, 2]
        assert [s["sampleIndex"] for s in samples] == [0, 1]

    def test_snippets_unknown_recording(self, client):
        response = client.post("/api/extract-speaker-snippets", json={"audioPath": "0" * 32, "segments": []})
        assert response.status_code == 404

    def test_snippets_rejects_paths(self, client):
        response = client.post("/api/extract-speaker-snippets", json={"audioPath": "/etc/passwd", "segments": []})
        assert response.status_code == 404

    @patch("minutemaster.server.routes.extract_clip", return_value=b"abc")
    def test_speaker_audio(self, mock_clip, client, state, recording_id):
        response = client.post(
            "/api/get-speaker-audio", json={"audioFile": recording_id, "startTime": 1, "endTime": 3.5}
        )

        assert response.json["audioData"] == "data:audio/mpeg;base64,YWJj"
        path, start, end = mock_clip.call_args.args
        assert path == str(state.recordings.get_audio_path(recording_id))
        assert (start, end) == (1.0, 3.5)

    def test_speaker_audio_bad_times(self, client, recording_id):
        response = client.post(
            "/api/get-speaker-audio", json={"audioFile": recording_id, "startTime": "soon", "endTime": 3}
        )
        assert response.status_code == 400

    def test_speaker_audio_empty_range(self, client, recording_id):
        response = client.post(
            "/api/get-speaker-audio", json={"audioFile": recording_id, "startTime": 3, "endTime": 3}
        )
        assert response.status_code == 400


EXPORT = {
    "title": "Weekly Sync",
    "date": "2024/05/01",
    "dateObject": "May 1, 2024",
    "participants": ["Anna", "Tom"],
    "summary": "Tom sends the report.",
    "keyPoints": ["Report due Friday"],
    "topics": [{"title": "Reports", "content": "Q3 report."}],
    "actionItems": [{"task": "Send report", "assignee": "Tom", "deadline": "Friday"}],
    "transcriptLines": [{"speaker": "Tom", "text": "I'll send it.", "timestamp": "00:45"}],
    "exportFormats": {"word": True, "pdf": False},
}


class TestDocuments:
    def test_generate_and_download_once(self, client, state):
        response = client.post("/api/generate-documents", json=EXPORT)
        body = response.json

        assert response.status_code == 200
        assert body["summaryFileName"] == "2024-05-01 – Weekly Sync – Summary.docx"
        assert "message" in body
        assert os.path.exists(body["summaryPath"])

        download = client.get(f"/api/download/summary/{quote(body['summaryFileName'])}")
        assert download.status_code == 200
        assert download.headers["Content-Disposition"].startswith("attachment")
        assert download.get_data()[:2] == b"PK"

        assert not os.path.exists(body["summaryPath"])
        assert client.get(f"/api/download/summary/{quote(body['summaryFileName'])}").status_code == 404

    def test_download_title_with_hash(self, client):
        body = client.post("/api/generate-documents", json=dict(EXPORT, title="Sprint #12")).json

        assert body["summaryFileName"] == "2024-05-01 – Sprint -12 – Summary.docx"
        download = client.get(f"/api/download/summary/{quote(body['summaryFileName'], safe='')}")
        assert download.status_code == 200

    def test_default_date(self, client):
        body = client.post("/api/generate-documents", json={"title": "Standup"}).json
        assert "Standup" in body["summaryFileName"]

    @patch("minutemaster.documents.subprocess.run", side_effect=FileNotFoundError())
    def test_pdf_note(self, mock_run, client):
        body = client.post("/api/generate-documents", json=dict(EXPORT, exportFormats={"word": True, "pdf": True})).json
        assert body["pdfNote"].startswith("PDF generation requires additional setup")

    def test_download_rejects_bad_type(self, client):
        response = client.get("/api/download/invoice/a.docx")
        assert response.status_code == 400

    def test_download_missing_file(self, client):
        assert client.get("/api/download/summary/missing.docx").status_code == 404

    def test_delete_recording(self, client, state):
        state.init_services(GLOBAL_OWNER, "sk-good")
        recording_id = upload(client).json["audioFilePath"]

        assert client.delete(f"/api/recordings/{recording_id}").status_code == 200
        assert client.delete(f"/api/recordings/{recording_id}").status_code == 404


class TestRecordings:
    @pytest.fixture
    def recording_id(self, client, state):
        state.init_services(GLOBAL_OWNER, "sk-good")
        return upload(client).json["audioFilePath"]

    def test_list_empty(self, client):
        assert client.get("/api/recordings").json == {"success": True, "recordings": []}

    def test_list_and_get(self, client, recording_id):
        recordings = client.get("/api/recordings").json["recordings"]
        assert [r["id"] for r in recordings] == [recording_id]
        assert recordings[0]["original_filename"] == "meeting.webm"

        body = client.get(f"/api/recordings/{recording_id}").json
        assert body["recording"]["stage"] == "transcribed"
        assert body["progress"]["progress"] == 50.0

    def test_get_unknown_recording(self, client):
        assert client.get("/api/recordings/0123456789abcdef0123456789abcdef").status_code == 404
        assert client.get("/api/recordings/not-an-id").status_code == 404

    def test_process(self, client, state, backend, recording_id):
        response = client.post(f"/api/recordings/{recording_id}/process")

        assert response.status_code == 200
        body = response.json
        assert len(body["transcription"]["segments"]) == 3
        assert [a["isWorkRelated"] for a in body["analysis"]] == [True, False, True]
        assert body["summary"]["summary"] == "Tom sends the report."
        assert state.recordings.get_metadata(recording_id)["stage"] == "summarized"

        filtered = backend.services.summarizer.summarize.call_args.args[0]
        assert "Nice weather" not in filtered
        assert "Tom sends the report Friday." in filtered

    def test_process_bad_model_response(self, client, backend, recording_id):
        backend.services.analyzer.classify_segments.side_effect = InvalidModelResponse("Not JSON")

        response = client.post(f"/api/recordings/{recording_id}/process")

        assert response.status_code == 502
        assert response.json["error"] == "Not JSON"

    def test_process_unknown_recording(self, client, state):
        state.init_services(GLOBAL_OWNER, "sk-good")
        assert client.post("/api/recordings/0123456789abcdef0123456789abcdef/process").status_code == 404

    def test_process_requires_openai(self, client):
        response = client.post("/api/recordings/0123456789abcdef0123456789abcdef/process")
        assert response.status_code == 400
