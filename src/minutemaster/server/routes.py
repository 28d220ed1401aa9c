"""
HTTP API for the recording wizard.

Every endpoint answers with JSON of the form {"success": true, ...} or
{"success": false, "error": "..."} and an error status code.

Endpoints:
- /api/auth/*: login, logout and session status
- /api/check-config, /api/init-openai: OpenAI key status and setup
- /api/transcribe: upload and transcribe a recording
- /api/analyze-transcript, /api/generate-summary: language model stages
- /api/identify-speakers, /api/extract-speaker-snippets, /api/get-speaker-audio:
  speaker assignment helpers
- /api/generate-documents, /api/download: Word document export
- /api/recordings: list, inspect, process or delete stored recordings
- /api/health: liveness check
"""

import io
import logging
import os
import tempfile
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from flask import Blueprint, current_app, jsonify, request, send_file, session
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from ..audio import (
    ConversionError,
    InvalidAPIKey,
    InvalidModelResponse,
    ServiceUnavailable,
    clip_data_url,
    extract_clip,
    select_speaker_samples,
)
from ..crypto import decrypt, encrypt
from ..documents import DocumentGenerator
from ..models import DetectedSpeaker, MeetingExport, TranscriptSegment, format_meeting_date
from ..storage import LocalMeetingStore
from .auth import auth_required, check_password, current_owner, current_user_id, login_required, login_user, logout_user
from .processor import MeetingProcessor
from .recordings import RecordingNotFound, RecordingStage
from .state import ServerState

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

ALLOWED_EXTENSIONS = {"webm", "opus", "ogg", "oga", "wav", "mp3", "mp4", "m4a", "mpeg", "mpga", "flac", "aac", "wma"}


class APIRequestError(Exception):
    """An error reported to the client with a specific status code."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def get_state() -> ServerState:
    return current_app.extensions["minutemaster"]


def error_response(message: str, status_code: int):
    return jsonify({"success": False, "error": message}), status_code


def allowed_file(filename: str) -> bool:
    """Check if the uploaded file has an allowed extension."""
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise APIRequestError("Request body must be a JSON object")
    return data


def _parse_segments(raw: Any) -> List[TranscriptSegment]:
    if not isinstance(raw, list):
        raise APIRequestError("segments must be a list")
    return [TranscriptSegment.from_dict(seg) for seg in raw if isinstance(seg, dict)]


def _stored_api_key() -> Optional[str]:
    """Decrypt the caller's saved API key, if any."""
    state = get_state()
    if auth_required():
        user_id = current_user_id()
        encrypted = state.users.get_encrypted_api_key(user_id) if user_id else None
    else:
        encrypted = state.config_store.get_encrypted_api_key()

    if not encrypted:
        return None

    api_key = decrypt(encrypted)
    if api_key is None:
        logger.warning("Stored API key could not be decrypted on this machine")
    return api_key


def _restore_services(owner: str) -> bool:
    """Initialise services from a saved or configured key when none are active."""
    state = get_state()
    if state.get_services(owner) is not None:
        return True

    api_key = _stored_api_key()
    if not api_key and not auth_required():
        api_key = current_app.config.get("OPENAI_API_KEY") or None

    if not api_key:
        return False

    state.init_services(owner, api_key)
    return True


def _require_processor() -> MeetingProcessor:
    owner = current_owner()
    _restore_services(owner)
    processor = get_state().processor(owner)
    if processor is None:
        raise APIRequestError("OpenAI not initialized")
    return processor


@api.errorhandler(APIRequestError)
def handle_request_error(e: APIRequestError):
    return error_response(e.message, e.status_code)


@api.errorhandler(ServiceUnavailable)
def handle_service_unavailable(e: ServiceUnavailable):
    return error_response(str(e) or "OpenAI not initialized", 400)


@api.errorhandler(RecordingNotFound)
def handle_recording_not_found(e: RecordingNotFound):
    return error_response(str(e), 404)


@api.errorhandler(ValueError)
def handle_value_error(e: ValueError):
    return error_response(str(e), 400)


@api.errorhandler(HTTPException)
def handle_http_exception(e: HTTPException):
    return error_response(e.description or e.name, e.code or 500)


@api.errorhandler(Exception)
def handle_unexpected_error(e: Exception):
    # Covers OpenAI SDK errors, ffmpeg failures and storage errors
    logger.exception(f"Request to {request.path} failed: {e}")
    return error_response(str(e) or type(e).__name__, 500)


@api.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return jsonify(
        {
            "status": "ok",
            "firebaseConfigured": get_state().firebase_configured,
            "timestamp": datetime.now().isoformat(),
        }
    )


@api.route("/auth/status", methods=["GET"])
def auth_status():
    if not auth_required():
        return jsonify({"success": True, "authenticated": True, "email": None, "requireAuth": False})

    return jsonify(
        {
            "success": True,
            "authenticated": bool(current_user_id()),
            "email": session.get("email"),
            "requireAuth": True,
        }
    )


@api.route("/auth/login", methods=["POST"])
def login():
    """
    Log in with email and password.

    Returns:
    - email: Normalised email of the user
    - hasApiKey: Whether a saved OpenAI key was restored for this session
    """
    data = _json_body()
    email = str(data.get("email") or "").strip()
    password = str(data.get("password") or "")
    if not email or not password:
        return error_response("Email and password are required", 400)

    state = get_state()
    user = state.users.get_user(email)
    if user is None or not check_password(user.get("passwordHash"), password):
        logger.info("Failed login attempt")
        return error_response("Invalid email or password", 401)

    login_user(user["id"], user["email"])
    state.users.update_last_login(user["id"])
    logger.info(f"User {user['email']} logged in")

    has_api_key = False
    encrypted = user.get("encryptedApiKey")
    if encrypted:
        api_key = decrypt(encrypted)
        if api_key:
            state.init_services(user["id"], api_key)
            has_api_key = True
        else:
            logger.warning(f"Saved API key for {user['email']} could not be decrypted")

    return jsonify({"success": True, "email": user["email"], "hasApiKey": has_api_key})


@api.route("/auth/logout", methods=["POST"])
def logout():
    user_id = current_user_id()
    if user_id:
        get_state().clear_services(user_id)
    logout_user()
    return jsonify({"success": True})


@api.route("/check-config", methods=["GET"])
@login_required
def check_config():
    """Report whether an API key is saved and whether OpenAI services are ready."""
    owner = current_owner()
    is_initialized = _restore_services(owner)
    has_saved_key = _stored_api_key() is not None

    return jsonify({"success": True, "hasApiKey": has_saved_key or is_initialized, "isInitialized": is_initialized})


@api.route("/init-openai", methods=["POST"])
@login_required
def init_openai():
    """
    Validate an OpenAI API key and initialise the services with it.

    Expected JSON:
    - apiKey: OpenAI API key
    - saveKey: Persist the key (encrypted) for later sessions
    """
    data = _json_body()
    api_key = str(data.get("apiKey") or "").strip()
    save_key = bool(data.get("saveKey"))
    if not api_key:
        return error_response("API key is required", 400)

    state = get_state()
    try:
        state.key_validator(api_key)
    except InvalidAPIKey as e:
        return error_response(f"Invalid API key: {e}", 400)

    owner = current_owner()
    state.init_services(owner, api_key)

    saved = False
    if save_key:
        encrypted = encrypt(api_key)
        if auth_required():
            state.users.set_encrypted_api_key(current_user_id(), encrypted)
        else:
            state.config_store.set_encrypted_api_key(encrypted)
        saved = True
        logger.info("Encrypted API key saved")

    return jsonify({"success": True, "saved": saved})


@api.route("/transcribe", methods=["POST"])
@login_required
def transcribe():
    """
    Upload a recording and transcribe it.

    Expected form data:
    - audio: Recorded audio file

    Returns:
    - transcription: Text, segments, language and duration
    - audioUrl: Signed URL of the stored audio (Firebase only)
    - audioFilePath: Recording id for the speaker sample endpoints
    """
    processor = _require_processor()

    if "audio" not in request.files:
        return error_response("No audio file uploaded", 400)

    file = request.files["audio"]
    original_filename = secure_filename(file.filename or "") or "recording.webm"
    if not allowed_file(original_filename):
        allowed_types = ", ".join(sorted(ALLOWED_EXTENSIONS))
        return error_response(f"File type not allowed. Allowed types: {allowed_types}", 400)

    state = get_state()
    suffix = f".{original_filename.rsplit('.', 1)[1].lower()}"
    fd, temp_path = tempfile.mkstemp(suffix=suffix, dir=str(state.recordings.recordings_dir))
    os.close(fd)

    try:
        file.save(temp_path)
        if os.path.getsize(temp_path) == 0:
            return error_response("Empty file not allowed", 400)
        recording_id = state.recordings.create_recording(original_filename, temp_path)
    finally:
        if os.path.exists(temp_path):
            os.unlink(temp_path)

    transcription = processor.transcribe(recording_id)

    audio_url = None
    if state.meetings.is_remote:
        try:
            audio_path = state.recordings.get_audio_path(recording_id)
            audio_url = state.meetings.upload_audio(str(audio_path), original_filename, file.mimetype)
        except Exception as e:
            logger.warning(f"Audio upload failed, continuing without it: {e}")

    return jsonify(
        {
            "success": True,
            "transcription": transcription.to_dict(),
            "audioUrl": audio_url,
            "audioFilePath": recording_id,
            "recordingId": recording_id,
        }
    )


@api.route("/analyze-transcript", methods=["POST"])
@login_required
def analyze_transcript():
    """Classify segments as work-related or casual and detect speaker introductions."""
    processor = _require_processor()
    data = _json_body()
    segments = _parse_segments(data.get("segments"))

    try:
        analysis, detected = processor.analyze(segments, data.get("recordingId"))
    except InvalidModelResponse as e:
        return error_response(str(e), 502)

    return jsonify(
        {
            "success": True,
            "analysis": [a.to_dict() for a in analysis],
            "detectedSpeakers": [d.to_dict() for d in detected],
        }
    )


@api.route("/generate-summary", methods=["POST"])
@login_required
def generate_summary():
    """Generate executive summary, key points, action items and topics."""
    processor = _require_processor()
    data = _json_body()
    filtered_transcript = str(data.get("filteredTranscript") or "").strip()
    if not filtered_transcript:
        return error_response("filteredTranscript is required", 400)

    try:
        summary = processor.summarize(filtered_transcript, data.get("recordingId"))
    except InvalidModelResponse as e:
        return error_response(str(e), 502)

    return jsonify({"success": True, "summary": summary.to_dict()})


@api.route("/identify-speakers", methods=["POST"])
@login_required
def identify_speakers():
    """Propagate user-provided voice labels to every segment."""
    processor = _require_processor()
    data = _json_body()
    segments = _parse_segments(data.get("segments"))

    raw_labels = data.get("voiceLabels") or {}
    if not isinstance(raw_labels, dict):
        return error_response("voiceLabels must be an object", 400)

    voice_labels = {}
    for key, name in raw_labels.items():
        try:
            voice_labels[int(key)] = str(name)
        except (TypeError, ValueError):
            return error_response(f"Invalid segment index in voiceLabels: {key}", 400)

    try:
        speaker_map = processor.services.identifier.identify(segments, voice_labels)
    except InvalidModelResponse as e:
        return error_response(str(e), 502)

    return jsonify(
        {
            "success": True,
            "speakerMap": [{"segmentIndex": idx, "speaker": name} for idx, name in sorted(speaker_map.items())],
        }
    )


@api.route("/extract-speaker-snippets", methods=["POST"])
@login_required
def extract_speaker_snippets():
    """
    Choose short samples of the recording for the user to name.

    Expected JSON:
    - audioPath: Recording id returned by /api/transcribe
    - segments: Selected segments, each with its originalIndex
    - detectedSpeakers: Optional introductions found during analysis
    """
    data = _json_body()
    recording_id = str(data.get("audioPath") or "")
    if not recording_id:
        return error_response("audioPath is required", 400)

    state = get_state()
    state.recordings.get_audio_path(recording_id)

    raw_segments = data.get("segments")
    segments = _parse_segments(raw_segments)
    indices = []
    for position, raw in enumerate(seg for seg in raw_segments if isinstance(seg, dict)):
        try:
            indices.append(int(raw.get("originalIndex", position)))
        except (TypeError, ValueError):
            indices.append(position)

    detected = [DetectedSpeaker.from_dict(d) for d in data.get("detectedSpeakers") or [] if isinstance(d, dict)]
    if not detected and state.recordings.recording_exists(recording_id):
        stored = state.recordings.get_analysis(recording_id) or {}
        detected = [DetectedSpeaker.from_dict(d) for d in stored.get("detectedSpeakers", [])]

    samples = select_speaker_samples(segments, indices, detected)
    return jsonify({"success": True, "speakerSamples": [s.to_dict() for s in samples]})


@api.route("/get-speaker-audio", methods=["POST"])
@login_required
def get_speaker_audio():
    """Return a clip of the recording as a playable data URL."""
    data = _json_body()
    recording_id = str(data.get("audioFile") or "")
    if not recording_id:
        return error_response("audioFile is required", 400)

    try:
        start_time = float(data.get("startTime"))
        end_time = float(data.get("endTime"))
    except (TypeError, ValueError):
        return error_response("startTime and endTime must be numbers", 400)

    audio_path = get_state().recordings.get_audio_path(recording_id)

    try:
        clip = extract_clip(str(audio_path), start_time, end_time)
    except ConversionError as e:
        return error_response(str(e), 500)

    return jsonify({"success": True, "audioData": clip_data_url(clip)})


@api.route("/generate-documents", methods=["POST"])
@login_required
def generate_documents():
    """
    Generate the summary and transcript Word documents.

    With Firebase the documents are uploaded and signed URLs returned;
    otherwise they are kept for a one-time download.
    """
    data = _json_body()
    export = MeetingExport.from_dict(data)
    if not export.date or not export.date_object:
        short, long = format_meeting_date(date.today())
        export.date = export.date or short
        export.date_object = export.date_object or long

    state = get_state()
    generated = DocumentGenerator(state.meetings.output_dir).generate(export)
    result = state.meetings.save_documents(generated, export)
    if generated.pdf_note:
        result["pdfNote"] = generated.pdf_note

    recording_id = data.get("recordingId")
    if recording_id and state.recordings.recording_exists(recording_id):
        state.recordings.update_stage(recording_id, RecordingStage.EXPORTED)

    return jsonify({"success": True, **result})


@api.route("/download/<doc_type>/<filename>", methods=["GET"])
@login_required
def download(doc_type: str, filename: str):
    """Send a generated document once, then delete it."""
    meetings = get_state().meetings
    if not isinstance(meetings, LocalMeetingStore):
        return error_response("Documents are stored in Firebase; use the signed URLs", 404)

    try:
        path = meetings.resolve_download(doc_type, filename)
    except FileNotFoundError:
        return error_response("File not found", 404)

    data = path.read_bytes()
    meetings.remove(path)
    logger.info(f"Sent and removed {path.name}")
    return send_file(io.BytesIO(data), as_attachment=True, download_name=path.name)


@api.route("/recordings", methods=["GET"])
@login_required
def list_recordings():
    """List stored recordings, newest first."""
    limit = request.args.get("limit", 100, type=int)
    return jsonify({"success": True, "recordings": get_state().recordings.list_recordings(limit=limit)})


@api.route("/recordings/<recording_id>", methods=["GET"])
@login_required
def get_recording(recording_id: str):
    """Return the stage and progress of a recording."""
    recordings = get_state().recordings
    metadata = recordings.get_metadata(recording_id)
    if metadata is None:
        raise RecordingNotFound(f"Recording {recording_id} does not exist")

    return jsonify({"success": True, "recording": metadata, "progress": recordings.get_progress(recording_id)})


@api.route("/recordings/<recording_id>/process", methods=["POST"])
@login_required
def process_recording(recording_id: str):
    """
    Transcribe, classify and summarize a stored recording without review.

    Every segment the model marks as work-related goes into the summary.
    """
    processor = _require_processor()
    get_state().recordings.get_audio_path(recording_id)

    try:
        transcription, analysis, summary = processor.process_recording(recording_id)
    except InvalidModelResponse as e:
        return error_response(str(e), 502)

    return jsonify(
        {
            "success": True,
            "transcription": transcription.to_dict(),
            "analysis": [a.to_dict() for a in analysis],
            "summary": summary.to_dict(),
        }
    )


@api.route("/recordings/<recording_id>", methods=["DELETE"])
@login_required
def delete_recording(recording_id: str):
    """Delete a recording and its intermediate files."""
    if not get_state().recordings.delete_recording(recording_id):
        return error_response("Recording not found", 404)
    return jsonify({"success": True})
