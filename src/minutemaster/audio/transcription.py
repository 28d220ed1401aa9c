"""
Audio transcription using the OpenAI speech-to-text API.

The recording is sent to whisper-1 with verbose_json output so that the
reply carries timestamped segments. Files the API would reject (unsupported
container, over the upload limit) are re-encoded with ffmpeg first.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict

from ..models import TranscriptSegment, Transcription
from .conversion import convert_to_mp3, needs_conversion
from .llm import OpenAIService

logger = logging.getLogger(__name__)


def _as_dict(response: Any) -> Dict[str, Any]:
    # SDK responses are pydantic models; plain dicts come from tests and proxies
    if isinstance(response, dict):
        return response
    if hasattr(response, "model_dump"):
        return response.model_dump()
    return dict(response)


class AudioTranscriber(OpenAIService):
    """Transcribe recordings into timestamped segments."""

    def __init__(self, api_key=None, model: str = "whisper-1", base_url=None, client=None):
        super().__init__(api_key=api_key, model=model, base_url=base_url, client=client)

    def transcribe(self, audio_path: str) -> Transcription:
        """
        Transcribe an audio file.

        Args:
            audio_path: Path to the recording

        Returns:
            Transcription with full text and segments

        Raises:
            FileNotFoundError: If the file does not exist
            ConversionError: If the file needs re-encoding and ffmpeg fails
        """
        audio_file = Path(audio_path)
        if not audio_file.exists():
            raise FileNotFoundError(f"Audio file not found: {audio_file}")

        upload_path = str(audio_file)
        converted = None
        if needs_conversion(upload_path):
            converted = convert_to_mp3(upload_path)
            upload_path = converted

        try:
            size = os.path.getsize(upload_path)
            logger.info(f"Transcribing {audio_file.name} ({size} bytes, model={self.model})")

            with open(upload_path, "rb") as f:
                response = self.client.audio.transcriptions.create(
                    file=f,
                    model=self.model,
                    response_format="verbose_json",
                    timestamp_granularities=["segment"],
                )
        finally:
            if converted and os.path.exists(converted):
                os.unlink(converted)

        data = _as_dict(response)
        segments = [
            TranscriptSegment(
                start=float(seg.get("start", 0.0)),
                end=float(seg.get("end", 0.0)),
                text=str(seg.get("text", "")).strip(),
                id=seg.get("id", index),
            )
            for index, seg in enumerate(_as_dict(s) for s in data.get("segments") or [])
        ]

        transcription = Transcription(
            text=str(data.get("text", "")).strip(),
            segments=segments,
            language=data.get("language"),
            duration=data.get("duration"),
        )
        logger.info(f"Transcription complete: {len(segments)} segments")
        return transcription
