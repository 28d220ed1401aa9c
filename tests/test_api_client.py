from unittest.mock import MagicMock

import pytest
import requests
from requests.exceptions import ConnectionError, RequestException

from minutemaster.client import APIClient, APIError


def make_response(status_code=200, payload=None, content=b""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.content = content
    if payload is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def client():
    client = APIClient("http://server:3000/")
    client.session = MagicMock()
    return client


def test_url(client):
    assert client._url("/health") == "http://server:3000/api/health"


def test_login_sends_credentials(client):
    client.session.request.return_value = make_response(payload={"success": True, "email": "a@b.c", "hasApiKey": False})

    assert client.login("a@b.c", "pw")["email"] == "a@b.c"

    method, url = client.session.request.call_args.args
    assert (method, url) == ("POST", "http://server:3000/api/auth/login")
    assert client.session.request.call_args.kwargs["json"] == {"email": "a@b.c", "password": "pw"}


def test_server_error_message(client):
    client.session.request.return_value = make_response(401, {"success": False, "error": "Invalid email or password"})

    with pytest.raises(APIError) as excinfo:
        client.login("a@b.c", "wrong")

    assert str(excinfo.value) == "Invalid email or password"
    assert excinfo.value.status_code == 401


def test_success_false_with_ok_status(client):
    client.session.request.return_value = make_response(200, {"success": False, "error": "nope"})
    with pytest.raises(APIError, match="nope"):
        client.check_config()


def test_non_json_error(client):
    client.session.request.return_value = make_response(502)
    with pytest.raises(APIError, match="HTTP 502"):
        client.check_config()


def test_network_errors_are_wrapped(client):
    client.session.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(RequestException) as excinfo:
        client.generate_summary("text")

    assert str(excinfo.value).startswith("Summary generation failed")
    assert not isinstance(excinfo.value, APIError)


def test_health_check_connection_error(client):
    client.session.get.side_effect = requests.Timeout("slow")
    with pytest.raises(ConnectionError, match="Unable to connect"):
        client.health_check()


def test_transcribe_uploads_file(client, tmp_path):
    audio = tmp_path / "meeting.webm"
    audio.write_bytes(b"audio")
    client.session.request.return_value = make_response(payload={"success": True, "audioFilePath": "abc"})

    assert client.transcribe(str(audio))["audioFilePath"] == "abc"

    kwargs = client.session.request.call_args.kwargs
    assert kwargs["timeout"] == 600
    assert kwargs["files"]["audio"][0] == "meeting.webm"


def test_transcribe_missing_file(client, tmp_path):
    with pytest.raises(FileNotFoundError):
        client.transcribe(str(tmp_path / "missing.webm"))
    client.session.request.assert_not_called()


def test_identify_speakers_stringifies_labels(client):
    client.session.request.return_value = make_response(payload={"success": True, "speakerMap": []})

    client.identify_speakers([{"start": 0, "end": 1, "text": "hi"}], {0: "Anna"})

    assert client.session.request.call_args.kwargs["json"]["voiceLabels"] == {"0": "Anna"}


def test_optional_recording_id(client):
    client.session.request.return_value = make_response(payload={"success": True, "analysis": []})

    client.analyze_transcript([])
    assert "recordingId" not in client.session.request.call_args.kwargs["json"]

    client.analyze_transcript([], recording_id="rec")
    assert client.session.request.call_args.kwargs["json"]["recordingId"] == "rec"


def test_save_download_into_directory(client, tmp_path):
    client.session.get.return_value = make_response(content=b"PK docx")

    path = client.save_download("summary", "notes.docx", str(tmp_path))

    assert path == tmp_path / "notes.docx"
    assert path.read_bytes() == b"PK docx"
    assert client.session.get.call_args.args[0] == "http://server:3000/api/download/summary/notes.docx"


def test_download_already_taken(client):
    client.session.get.return_value = make_response(404, {"success": False, "error": "File not found"})
    with pytest.raises(APIError, match="File not found"):
        client.download("summary", "notes.docx")


def test_download_escapes_filename(client):
    client.session.get.return_value = make_response(content=b"PK docx")

    client.download("summary", "2024-05-01 – Sprint #12 – Summary.docx")

    assert client.session.get.call_args.args[0] == (
        "http://server:3000/api/download/summary/2024-05-01%20%E2%80%93%20Sprint%20%2312%20%E2%80%93%20Summary.docx"
    )


def test_list_recordings(client):
    client.session.request.return_value = make_response(payload={"success": True, "recordings": [{"id": "abc"}]})

    assert client.list_recordings(limit=5) == [{"id": "abc"}]
    assert client.session.request.call_args.kwargs["params"] == {"limit": 5}


def test_process_recording(client):
    client.session.request.return_value = make_response(payload={"success": True, "summary": {"summary": "ok"}})

    assert client.process_recording("abc")["summary"]["summary"] == "ok"

    method, url = client.session.request.call_args.args
    assert (method, url) == ("POST", "http://server:3000/api/recordings/abc/process")
    assert client.session.request.call_args.kwargs["timeout"] == 900
