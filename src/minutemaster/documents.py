"""
Word document generation for meeting minutes.

Two documents are produced per meeting:
- Summary: title, date, participants, executive summary, key points,
  discussion topics and numbered action items
- Transcript: title, date and one "[speaker] text" paragraph per line

Documents are built with python-docx. PDF copies are optional and rely on a
LibreOffice installation; without one the export still succeeds and carries
a note explaining what is missing.
"""

import io
import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from docx import Document
from docx.document import Document as WordDocument
from docx.shared import Pt, RGBColor

from .config import ConfigManager
from .models import NOT_SPECIFIED, MeetingExport

logger = logging.getLogger(__name__)

SPEAKER_COLOR = RGBColor(0x4A, 0x55, 0x68)
PDF_SETUP_NOTE = (
    "PDF generation requires additional setup. Install LibreOffice (soffice) on the server "
    "or convert the Word documents to PDF manually."
)

_ILLEGAL_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|#%\x00-\x1f]')


def _twips(value: int) -> Pt:
    # 20 twips per point
    return Pt(value / 20)


def _spacing(paragraph, before: int = 0, after: int = 0):
    fmt = paragraph.paragraph_format
    if before:
        fmt.space_before = _twips(before)
    if after:
        fmt.space_after = _twips(after)
    return paragraph


def safe_filename(title: str, extension: str = ".docx") -> str:
    """Turn a document title into a file name, replacing characters not allowed on common filesystems."""
    name = _ILLEGAL_FILENAME_CHARS.sub("-", title).strip().strip(".")
    return f"{name or 'document'}{extension}"


def build_summary_document(export: MeetingExport) -> WordDocument:
    """Build the summary document for a meeting."""
    doc = Document()

    _spacing(doc.add_heading(export.summary_title, level=1), after=200)

    date_paragraph = doc.add_paragraph()
    date_paragraph.add_run(f"Date: {export.date_object}").bold = True
    _spacing(date_paragraph, after=200)

    if export.participants:
        _spacing(doc.add_heading("Participants", level=2), before=100, after=100)
        for participant in export.participants:
            _spacing(doc.add_paragraph(participant, style="List Bullet"), after=50)

    _spacing(doc.add_heading("Executive Summary", level=2), before=300, after=100)
    _spacing(doc.add_paragraph(export.summary), after=300)

    _spacing(doc.add_heading("Key Points", level=2), before=200, after=100)
    for point in export.key_points:
        _spacing(doc.add_paragraph(point, style="List Bullet"), after=100)

    _spacing(doc.add_heading("Discussion Topics", level=2), before=300, after=100)
    for topic in export.topics:
        _spacing(doc.add_heading(topic.title, level=3), before=150, after=100)
        _spacing(doc.add_paragraph(topic.content), after=200)

    _spacing(doc.add_heading("Action Items", level=2), before=300, after=100)
    for number, action in enumerate(export.action_items, start=1):
        paragraph = doc.add_paragraph()
        paragraph.add_run(f"{number}. ").bold = True
        paragraph.add_run(action.task)
        paragraph.add_run(f" - Assignee: {action.assignee}").italic = True
        if action.deadline != NOT_SPECIFIED:
            paragraph.add_run(f" - Due: {action.deadline}").italic = True
        _spacing(paragraph, after=100)

    return doc


def build_transcript_document(export: MeetingExport) -> WordDocument:
    """Build the speaker-attributed transcript document for a meeting."""
    doc = Document()

    _spacing(doc.add_heading(export.transcript_title, level=1), after=200)

    date_paragraph = doc.add_paragraph()
    date_paragraph.add_run(f"Date: {export.date_object}").bold = True
    _spacing(date_paragraph, after=300)

    _spacing(doc.add_heading("Full Transcript", level=2), before=200, after=200)

    for line in export.transcript_lines:
        paragraph = doc.add_paragraph()
        speaker_run = paragraph.add_run(f"[{line.speaker}] ")
        speaker_run.bold = True
        speaker_run.font.color.rgb = SPEAKER_COLOR
        paragraph.add_run(line.text)
        _spacing(paragraph, after=150)

    return doc


def document_to_bytes(doc: WordDocument) -> bytes:
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


class PDFConversionError(Exception):
    """Raised when LibreOffice is missing or fails to convert a document."""


def convert_to_pdf(docx_path: str, output_dir: str) -> str:
    """
    Convert a .docx file to PDF with LibreOffice in headless mode.

    Returns:
        Path to the PDF file

    Raises:
        PDFConversionError: If soffice is missing or the conversion fails
    """
    soffice = ConfigManager.get("SOFFICE_BINARY") or "soffice"
    cmd = [soffice, "--headless", "--convert-to", "pdf", "--outdir", output_dir, docx_path]

    try:
        result = subprocess.run(cmd, capture_output=True, timeout=120)
    except FileNotFoundError:
        raise PDFConversionError("LibreOffice (soffice) not found")
    except subprocess.TimeoutExpired:
        raise PDFConversionError("PDF conversion timed out")

    pdf_path = os.path.join(output_dir, Path(docx_path).with_suffix(".pdf").name)
    if result.returncode != 0 or not os.path.exists(pdf_path):
        stderr = result.stderr.decode("utf-8", errors="replace").strip() if result.stderr else ""
        raise PDFConversionError(f"PDF conversion failed: {stderr or f'exit code {result.returncode}'}")

    return pdf_path


@dataclass
class GeneratedDocuments:
    """Files written for one export."""

    summary_path: str
    transcript_path: str
    summary_file_name: str
    transcript_file_name: str
    pdf_paths: Dict[str, str] = field(default_factory=dict)
    pdf_note: Optional[str] = None


class DocumentGenerator:
    """Write the summary and transcript documents (and optional PDFs) to a directory."""

    def __init__(self, output_dir: str):
        self.output_dir = output_dir

    def generate(self, export: MeetingExport) -> GeneratedDocuments:
        """
        Build both documents and save them.

        Args:
            export: Meeting data to render

        Returns:
            GeneratedDocuments with paths and file names
        """
        os.makedirs(self.output_dir, exist_ok=True)

        summary_name = safe_filename(export.summary_title)
        transcript_name = safe_filename(export.transcript_title)
        summary_path = os.path.join(self.output_dir, summary_name)
        transcript_path = os.path.join(self.output_dir, transcript_name)

        build_summary_document(export).save(summary_path)
        build_transcript_document(export).save(transcript_path)
        logger.info(f"Generated documents: {summary_name}, {transcript_name}")

        generated = GeneratedDocuments(
            summary_path=summary_path,
            transcript_path=transcript_path,
            summary_file_name=summary_name,
            transcript_file_name=transcript_name,
        )

        if export.export_formats.get("pdf"):
            try:
                generated.pdf_paths = {
                    "summary": convert_to_pdf(summary_path, self.output_dir),
                    "transcript": convert_to_pdf(transcript_path, self.output_dir),
                }
            except PDFConversionError as e:
                logger.warning(f"PDF export skipped: {e}")
                generated.pdf_paths = {}
                generated.pdf_note = PDF_SETUP_NOTE

        return generated
