"""
Client module for communicating with the MinuteMaster API server.

This module provides a simple interface for the Streamlit wizard to:
- Log in and configure the OpenAI key
- Upload recordings for transcription
- Run analysis, summaries and speaker assignment
- Generate and download the meeting documents
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from requests.exceptions import ConnectionError, RequestException


class APIError(RequestException):
    """The server answered with an error; ``str(e)`` is the server message."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class APIClient:
    """Client for communicating with the MinuteMaster API server."""

    def __init__(self, base_url: str = "http://localhost:3000", timeout: int = 30):
        """
        Initialize the API client.

        Args:
            base_url: Base URL of the API server
            timeout: Default timeout for short requests in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        # The session keeps the auth cookie between calls
        self.session = requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/{path.lstrip('/')}"

    def _handle(self, response: requests.Response, action: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict):
            if response.ok:
                raise APIError(f"{action} failed: invalid response from server", response.status_code)
            raise APIError(f"{action} failed: HTTP {response.status_code}", response.status_code)

        if not response.ok or data.get("success") is False:
            message = data.get("error") or f"HTTP {response.status_code}"
            raise APIError(message, response.status_code)

        return data

    def _request(self, method: str, path: str, action: str, timeout: Optional[int] = None, **kwargs) -> Dict[str, Any]:
        try:
            response = self.session.request(method, self._url(path), timeout=timeout or self.timeout, **kwargs)
        except RequestException as e:
            raise RequestException(f"{action} failed: {e}")
        return self._handle(response, action)

    def health_check(self) -> Dict[str, Any]:
        """
        Check if the API server is healthy.

        Raises:
            ConnectionError: If unable to connect to the server
        """
        try:
            response = self.session.get(self._url("health"), timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except RequestException as e:
            raise ConnectionError(f"Unable to connect to API server: {e}")

    def auth_status(self) -> Dict[str, Any]:
        return self._request("GET", "auth/status", "Auth status check")

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Log in; the session cookie is kept for later calls.

        Returns:
            Dictionary with email and hasApiKey
        """
        return self._request("POST", "auth/login", "Login", json={"email": email, "password": password})

    def logout(self) -> Dict[str, Any]:
        return self._request("POST", "auth/logout", "Logout")

    def check_config(self) -> Dict[str, Any]:
        return self._request("GET", "check-config", "Config check")

    def init_openai(self, api_key: str, save_key: bool = False) -> Dict[str, Any]:
        """Validate and activate an OpenAI key, optionally saving it encrypted."""
        return self._request(
            "POST", "init-openai", "OpenAI initialization", json={"apiKey": api_key, "saveKey": save_key}
        )

    def transcribe(self, file_path: str, timeout: int = 600) -> Dict[str, Any]:
        """
        Upload a recording and transcribe it.

        Args:
            file_path: Path to the audio file to upload
            timeout: Request timeout in seconds

        Returns:
            Dictionary with transcription, audioUrl and audioFilePath

        Raises:
            FileNotFoundError: If the file doesn't exist
            RequestException: If the upload fails
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Audio file not found: {file_path}")

        with open(file_path, "rb") as audio_file:
            files = {"audio": (file_path.name, audio_file)}
            return self._request("POST", "transcribe", "Transcription", timeout=timeout, files=files)

    def analyze_transcript(self, segments: List[Dict[str, Any]], recording_id: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"segments": segments}
        if recording_id:
            payload["recordingId"] = recording_id
        return self._request("POST", "analyze-transcript", "Transcript analysis", timeout=300, json=payload)

    def generate_summary(self, filtered_transcript: str, recording_id: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"filteredTranscript": filtered_transcript}
        if recording_id:
            payload["recordingId"] = recording_id
        return self._request("POST", "generate-summary", "Summary generation", timeout=300, json=payload)

    def identify_speakers(self, segments: List[Dict[str, Any]], voice_labels: Dict[int, str]) -> Dict[str, Any]:
        payload = {"segments": segments, "voiceLabels": {str(k): v for k, v in voice_labels.items()}}
        return self._request("POST", "identify-speakers", "Speaker identification", timeout=300, json=payload)

    def extract_speaker_snippets(
        self,
        audio_path: str,
        segments: List[Dict[str, Any]],
        detected_speakers: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Ask the server to pick speaker samples.

        Args:
            audio_path: Recording id returned by transcribe()
            segments: Selected segments, each carrying originalIndex
            detected_speakers: Introductions found during analysis
        """
        payload: Dict[str, Any] = {"audioPath": audio_path, "segments": segments}
        if detected_speakers:
            payload["detectedSpeakers"] = detected_speakers
        return self._request("POST", "extract-speaker-snippets", "Speaker sample extraction", json=payload)

    def get_speaker_audio(self, audio_file: str, start_time: float, end_time: float) -> Dict[str, Any]:
        payload = {"audioFile": audio_file, "startTime": start_time, "endTime": end_time}
        return self._request("POST", "get-speaker-audio", "Speaker audio", timeout=60, json=payload)

    def generate_documents(self, export: Dict[str, Any], recording_id: Optional[str] = None) -> Dict[str, Any]:
        payload = dict(export)
        if recording_id:
            payload["recordingId"] = recording_id
        return self._request("POST", "generate-documents", "Document generation", timeout=300, json=payload)

    def download(self, doc_type: str, filename: str) -> bytes:
        """
        Download a generated document (the server deletes it afterwards).

        Raises:
            APIError: If the document is unknown or already downloaded
        """
        try:
            path = f"download/{quote(doc_type, safe='')}/{quote(filename, safe='')}"
            response = self.session.get(self._url(path), timeout=self.timeout)
        except RequestException as e:
            raise RequestException(f"Download failed: {e}")

        if not response.ok:
            self._handle(response, "Download")
        return response.content

    def save_download(self, doc_type: str, filename: str, dest: str) -> Path:
        """Download a document into ``dest`` (a directory or a file path) and return the file path."""
        content = self.download(doc_type, filename)

        dest_path = Path(dest)
        if dest_path.is_dir():
            dest_path = dest_path / filename
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest_path.write_bytes(content)
        return dest_path

    def delete_recording(self, recording_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"recordings/{recording_id}", "Recording deletion")

    def list_recordings(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Metadata of stored recordings, newest first."""
        return self._request("GET", "recordings", "Recording listing", params={"limit": limit})["recordings"]

    def get_recording(self, recording_id: str) -> Dict[str, Any]:
        return self._request("GET", f"recordings/{recording_id}", "Recording lookup")

    def process_recording(self, recording_id: str, timeout: int = 900) -> Dict[str, Any]:
        """Run transcription, analysis and summary on a stored recording in one request."""
        return self._request("POST", f"recordings/{recording_id}/process", "Recording processing", timeout=timeout)
