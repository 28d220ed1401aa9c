"""
Filesystem-based state management for uploaded meeting recordings.

Each recording gets its own directory:
- The uploaded audio file
- metadata.json with the processing stage and timestamps
- One JSON file per completed stage (transcription, analysis, summary)

The client refers to a recording only by its id, never by a server path.
"""

import json
import shutil
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class RecordingStage(Enum):
    """Processing stages for a recording."""

    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    ANALYZED = "analyzed"
    SUMMARIZED = "summarized"
    EXPORTED = "exported"
    FAILED = "failed"


class RecordingNotFound(Exception):
    """Raised when a recording id is unknown or malformed."""


class RecordingStore:
    """Manages recordings using one directory per recording."""

    FILES = {
        "metadata": "metadata.json",
        "transcription": "transcription.json",
        "analysis": "analysis.json",
        "summary": "summary.json",
        "progress": "progress.json",
    }

    def __init__(self, recordings_dir: str = "recordings"):
        """
        Args:
            recordings_dir: Directory to store all recording directories
        """
        self.recordings_dir = Path(recordings_dir)
        self.recordings_dir.mkdir(parents=True, exist_ok=True)

    def create_recording(self, original_filename: str, source_path: str, options: Dict[str, Any] = None) -> str:
        """
        Create a recording from an uploaded file.

        Args:
            original_filename: Sanitized name of the uploaded file
            source_path: Temporary path of the uploaded file (moved into the store)
            options: Extra metadata

        Returns:
            Recording id
        """
        recording_id = uuid.uuid4().hex
        recording_dir = self.recordings_dir / recording_id
        recording_dir.mkdir()

        extension = Path(original_filename).suffix.lower() or ".webm"
        audio_name = f"audio{extension}"
        shutil.move(source_path, recording_dir / audio_name)

        now = datetime.now().isoformat()
        metadata = {
            "id": recording_id,
            "original_filename": original_filename,
            "audio_file": audio_name,
            "file_size": (recording_dir / audio_name).stat().st_size,
            "options": options or {},
            "created_at": now,
            "updated_at": now,
            "stage": RecordingStage.UPLOADED.value,
        }
        self._save_json_file(recording_id, self.FILES["metadata"], metadata)
        return recording_id

    def get_recording_dir(self, recording_id: str) -> Path:
        """
        Get the directory for a recording.

        Raises:
            RecordingNotFound: If the id is not a valid recording id
        """
        try:
            normalized = uuid.UUID(str(recording_id)).hex
        except ValueError:
            raise RecordingNotFound(f"Invalid recording id: {recording_id}")
        return self.recordings_dir / normalized

    def recording_exists(self, recording_id: str) -> bool:
        try:
            return (self.get_recording_dir(recording_id) / self.FILES["metadata"]).exists()
        except RecordingNotFound:
            return False

    def get_audio_path(self, recording_id: str) -> Path:
        """
        Get the audio file of a recording.

        Raises:
            RecordingNotFound: If the recording or its audio file does not exist
        """
        metadata = self.get_metadata(recording_id)
        if metadata is None:
            raise RecordingNotFound(f"Recording {recording_id} not found")

        audio_path = self.get_recording_dir(recording_id) / metadata.get("audio_file", "")
        if not audio_path.is_file():
            raise RecordingNotFound(f"Audio for recording {recording_id} not found")
        return audio_path

    def save_transcription(self, recording_id: str, transcription: Dict[str, Any]) -> None:
        self._save_json_file(recording_id, self.FILES["transcription"], transcription)
        self.update_stage(recording_id, RecordingStage.TRANSCRIBED)

    def save_analysis(self, recording_id: str, analysis: Dict[str, Any]) -> None:
        self._save_json_file(recording_id, self.FILES["analysis"], analysis)
        self.update_stage(recording_id, RecordingStage.ANALYZED)

    def save_summary(self, recording_id: str, summary: Dict[str, Any]) -> None:
        self._save_json_file(recording_id, self.FILES["summary"], summary)
        self.update_stage(recording_id, RecordingStage.SUMMARIZED)

    def save_error(self, recording_id: str, error_message: str) -> None:
        """Record an error and mark the recording as failed."""
        metadata = self.get_metadata(recording_id)
        if metadata:
            metadata["error"] = error_message
            metadata["stage"] = RecordingStage.FAILED.value
            metadata["failed_at"] = datetime.now().isoformat()
            self._save_metadata(recording_id, metadata)

    def update_stage(self, recording_id: str, stage: RecordingStage) -> None:
        metadata = self.get_metadata(recording_id)
        if metadata:
            metadata["stage"] = stage.value
            metadata.pop("error", None)
            self._save_metadata(recording_id, metadata)

    def update_progress(self, recording_id: str, progress: float, message: str = "") -> None:
        progress_data = {"progress": progress, "message": message, "updated_at": datetime.now().isoformat()}
        self._save_json_file(recording_id, self.FILES["progress"], progress_data)

    def get_metadata(self, recording_id: str) -> Optional[Dict[str, Any]]:
        return self._load_json_file(recording_id, self.FILES["metadata"])

    def get_transcription(self, recording_id: str) -> Optional[Dict[str, Any]]:
        return self._load_json_file(recording_id, self.FILES["transcription"])

    def get_analysis(self, recording_id: str) -> Optional[Dict[str, Any]]:
        return self._load_json_file(recording_id, self.FILES["analysis"])

    def get_summary(self, recording_id: str) -> Optional[Dict[str, Any]]:
        return self._load_json_file(recording_id, self.FILES["summary"])

    def get_progress(self, recording_id: str) -> Optional[Dict[str, Any]]:
        return self._load_json_file(recording_id, self.FILES["progress"])

    def list_recordings(self, limit: int = 100) -> List[Dict[str, Any]]:
        """List recording metadata, newest first."""
        recordings = []
        for recording_dir in self.recordings_dir.iterdir():
            if not recording_dir.is_dir():
                continue
            metadata = self.get_metadata(recording_dir.name)
            if metadata:
                recordings.append(metadata)

        recordings.sort(key=lambda x: x.get("created_at", ""), reverse=True)
        return recordings[:limit]

    def delete_recording(self, recording_id: str) -> bool:
        """Delete a recording and all its files. Returns False if it did not exist."""
        if not self.recording_exists(recording_id):
            return False
        shutil.rmtree(self.get_recording_dir(recording_id))
        return True

    def _save_metadata(self, recording_id: str, metadata: Dict[str, Any]) -> None:
        metadata["updated_at"] = datetime.now().isoformat()
        self._save_json_file(recording_id, self.FILES["metadata"], metadata)

    def _save_json_file(self, recording_id: str, filename: str, data: Any) -> None:
        recording_dir = self.get_recording_dir(recording_id)
        if not recording_dir.exists():
            raise RecordingNotFound(f"Recording {recording_id} does not exist")

        with open(recording_dir / filename, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    def _load_json_file(self, recording_id: str, filename: str) -> Optional[Any]:
        try:
            file_path = self.get_recording_dir(recording_id) / filename
        except RecordingNotFound:
            return None

        if not file_path.exists():
            return None

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            return None
