"""
Storage for recordings and exported meeting documents.

With Firebase, raw audio and the generated documents are uploaded to Cloud
Storage and shared through signed URLs, and each export is recorded in the
Firestore "meetings" collection. Without Firebase, documents stay in a local
output directory and are served once through the download endpoint.
"""

import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

from werkzeug.utils import secure_filename

from ..documents import GeneratedDocuments
from ..models import MeetingExport
from .firebase import server_timestamp, signed_url

logger = logging.getLogger(__name__)

MEETINGS_COLLECTION = "meetings"
AUDIO_URL_DAYS = 7
DOCUMENT_URL_DAYS = 30
DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOWNLOAD_TYPES = ("summary", "transcript")


class MeetingStore:
    """Interface shared by the Firebase and local meeting stores."""

    is_remote = False

    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        os.makedirs(output_dir, exist_ok=True)

    def upload_audio(self, path: str, filename: str, content_type: Optional[str] = None) -> Optional[str]:
        """Store the raw recording remotely and return a URL, or None when stored locally only."""
        return None

    def save_documents(self, generated: GeneratedDocuments, export: MeetingExport) -> Dict[str, Any]:
        """Persist generated documents and return the response fields for the client."""
        raise NotImplementedError


class LocalMeetingStore(MeetingStore):
    """Documents kept in a local directory until downloaded once."""

    def save_documents(self, generated: GeneratedDocuments, export: MeetingExport) -> Dict[str, Any]:
        result = {
            "summaryPath": generated.summary_path,
            "transcriptPath": generated.transcript_path,
            "summaryFileName": generated.summary_file_name,
            "transcriptFileName": generated.transcript_file_name,
            "message": "Documents generated successfully (Firebase not configured, saved locally)",
        }
        if generated.pdf_paths:
            result["pdfPaths"] = dict(generated.pdf_paths)
        return result

    def resolve_download(self, doc_type: str, filename: str) -> Path:
        """
        Locate a generated document for download.

        Raises:
            ValueError: If the type is unknown or the filename escapes the output directory
            FileNotFoundError: If the document does not exist (or was already downloaded)
        """
        if doc_type not in DOWNLOAD_TYPES:
            raise ValueError(f"Invalid document type: {doc_type}")

        base = Path(self.output_dir).resolve()
        candidate = (base / filename).resolve()
        if candidate.parent != base or not filename or filename != Path(filename).name:
            raise ValueError("Invalid filename")
        if candidate.suffix.lower() not in (".docx", ".pdf"):
            raise ValueError("Invalid filename")
        if not candidate.is_file():
            raise FileNotFoundError(f"File not found: {filename}")

        return candidate

    def remove(self, path: Path) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove downloaded file {path}: {e}")


class FirebaseMeetingStore(MeetingStore):
    """Audio and documents in Cloud Storage, export records in Firestore."""

    is_remote = True

    def __init__(self, db, bucket, output_dir: str):
        super().__init__(output_dir)
        self.db = db
        self.bucket = bucket

    def upload_audio(self, path: str, filename: str, content_type: Optional[str] = None) -> Optional[str]:
        destination = f"audio/{int(time.time() * 1000)}_{secure_filename(filename) or 'recording'}"
        blob = self.bucket.blob(destination)
        blob.upload_from_filename(path, content_type=content_type)
        logger.info(f"Uploaded recording to {destination}")
        return signed_url(blob, AUDIO_URL_DAYS)

    def _upload_document(self, path: str, filename: str, content_type: str) -> str:
        blob = self.bucket.blob(f"documents/{filename}")
        blob.upload_from_filename(path, content_type=content_type)
        return signed_url(blob, DOCUMENT_URL_DAYS)

    def save_documents(self, generated: GeneratedDocuments, export: MeetingExport) -> Dict[str, Any]:
        summary_url = self._upload_document(generated.summary_path, generated.summary_file_name, DOCX_CONTENT_TYPE)
        transcript_url = self._upload_document(
            generated.transcript_path, generated.transcript_file_name, DOCX_CONTENT_TYPE
        )

        result = {
            "summaryUrl": summary_url,
            "transcriptUrl": transcript_url,
            "summaryFileName": generated.summary_file_name,
            "transcriptFileName": generated.transcript_file_name,
        }

        pdf_urls = {}
        for kind, pdf_path in generated.pdf_paths.items():
            pdf_urls[kind] = self._upload_document(pdf_path, Path(pdf_path).name, "application/pdf")
        if pdf_urls:
            result["pdfUrls"] = pdf_urls

        self.db.collection(MEETINGS_COLLECTION).add(
            {
                "title": export.title,
                "date": export.date_object,
                "participants": list(export.participants),
                "summary": export.summary,
                "keyPoints": list(export.key_points),
                "topics": [t.to_dict() for t in export.topics],
                "actionItems": [a.to_dict() for a in export.action_items],
                "summaryUrl": summary_url,
                "transcriptUrl": transcript_url,
                "summaryFileName": generated.summary_file_name,
                "transcriptFileName": generated.transcript_file_name,
                "createdAt": server_timestamp(),
            }
        )
        logger.info(f"Saved meeting '{export.title}' to Firestore")

        for path in [generated.summary_path, generated.transcript_path, *generated.pdf_paths.values()]:
            if os.path.exists(path):
                os.unlink(path)

        return result
