"""
Streamlit recording wizard for MinuteMaster.

Walks the user through one page per step:
- Sign in and OpenAI key setup
- Microphone selection with level test
- Recording with a live timer and level meter
- Segment review (work-related vs casual) and summary generation
- Speaker naming from short audio samples
- Final review and Word/PDF export

Recording happens locally; everything else is done by the API server.
"""

import base64
import logging
import os
import sys
import time
from datetime import date
from pathlib import Path

import streamlit as st

# Add the src directory to path when run with `streamlit run`
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from requests.exceptions import ConnectionError, RequestException

from minutemaster.audio import format_timestamp
from minutemaster.audio.capture import AudioCapture, RecordingSession
from minutemaster.audio.utils import categorize_devices, default_microphone
from minutemaster.client import APIClient
from minutemaster.config import ConfigManager
from minutemaster.models import DetectedSpeaker, MeetingSummary, SegmentAnalysis, SpeakerSample, Transcription
from minutemaster.ui.wizard import WizardError, WizardState, WizardStep

logger = logging.getLogger(__name__)

# Page configuration
st.set_page_config(page_title="MinuteMaster", page_icon="🎙️", layout="wide", initial_sidebar_state="expanded")


def initialize_session_state():
    """Initialize session state variables."""
    if "ui_api_base_url" not in st.session_state:
        st.session_state.ui_api_base_url = ""  # Empty = not overridden by UI
    if "api_client" not in st.session_state:
        api_url = ConfigManager.get("API_BASE_URL", st.session_state.ui_api_base_url)
        st.session_state.api_client = APIClient(api_url)
    if "wizard" not in st.session_state:
        st.session_state.wizard = WizardState(require_auth=detect_auth_required())
    if "recording_session" not in st.session_state:
        st.session_state.recording_session = None
    if "sample_audio" not in st.session_state:
        st.session_state.sample_audio = {}
    if "sample_names" not in st.session_state:
        st.session_state.sample_names = {}
    if "export_result" not in st.session_state:
        st.session_state.export_result = None
    if "downloads" not in st.session_state:
        st.session_state.downloads = {}


def client() -> APIClient:
    return st.session_state.api_client


def wizard() -> WizardState:
    return st.session_state.wizard


def detect_auth_required() -> bool:
    """Ask the server whether sign-in is required (assume yes when unreachable)."""
    try:
        return bool(client().auth_status().get("requireAuth", True))
    except RequestException:
        return True


def check_api_connection() -> bool:
    """Check if the API server is accessible."""
    try:
        health = client().health_check()
        return health.get("status") == "ok"
    except ConnectionError:
        return False


def go_to(step: WizardStep):
    try:
        wizard().go_to(step)
    except WizardError as e:
        st.warning(f"⚠️ {e}")
        return
    st.rerun()


def decode_data_url(data_url: str) -> bytes:
    _, _, encoded = data_url.partition(",")
    return base64.b64decode(encoded)


def login_page():
    st.title("🔐 Sign In")

    with st.form("login_form"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign In", type="primary", use_container_width=True)

    if submitted:
        if not email or not password:
            st.error("❌ Please enter your email and password")
            return
        try:
            with st.spinner("Signing in..."):
                result = client().login(email, password)
        except RequestException as e:
            st.error(f"❌ {e}")
            return

        state = wizard()
        state.login(result.get("email") or email)
        state.api_key_validated = bool(result.get("hasApiKey"))
        go_to(WizardStep.MICROPHONE if state.api_key_validated else WizardStep.API_KEY)


def api_key_page():
    st.title("🔑 OpenAI API Key")
    state = wizard()

    try:
        config = client().check_config()
    except RequestException as e:
        st.error(f"❌ Could not check server configuration: {e}")
        config = {}

    if config.get("isInitialized"):
        state.api_key_validated = True
        st.success("✅ An API key is already configured")
        if st.button("Continue ➡️", type="primary", use_container_width=True):
            go_to(WizardStep.MICROPHONE)
        st.markdown("---")
        st.caption("Enter a new key below to replace it.")

    api_key = st.text_input("API Key", type="password", placeholder="sk-...")
    save_key = st.checkbox("Remember this key (stored encrypted)", value=True)

    if st.button("✅ Validate Key", use_container_width=True, disabled=not api_key):
        try:
            with st.spinner("Validating API key..."):
                result = client().init_openai(api_key, save_key)
        except RequestException as e:
            st.error(f"❌ {e}")
            return

        state.api_key_validated = True
        if result.get("saved"):
            st.success("✅ API key validated and saved")
        go_to(WizardStep.MICROPHONE)


def microphone_page():
    st.title("🎙️ Select Microphones")
    state = wizard()

    capture = AudioCapture(frames_per_buffer=1024)
    try:
        devices = capture.list_devices()
    except OSError as e:
        st.error(f"❌ Could not list audio devices: {e}")
        return

    inputs = categorize_devices(devices)["input"]
    if not inputs:
        st.error("❌ No microphone detected")
        return

    by_index = {dev["index"]: dev for dev in inputs}
    if not state.selected_devices:
        default = default_microphone(devices)
        if default:
            state.selected_devices = [default["index"]]

    selected = st.multiselect(
        "Microphones to record",
        options=list(by_index),
        default=[idx for idx in state.selected_devices if idx in by_index],
        format_func=lambda idx: by_index[idx]["name"],
        help="All selected microphones are recorded at once and mixed into one file.",
    )
    state.selected_devices = selected

    for idx in selected:
        col1, col2 = st.columns([3, 1])
        with col1:
            st.text(by_index[idx]["name"])
        with col2:
            if st.button("🔊 Test", key=f"test_{idx}", use_container_width=True):
                level = capture.get_audio_level(idx)
                st.progress(min(level * 5, 1.0), text=f"Level: {level:.3f}")

    if st.button("Continue ➡️", type="primary", use_container_width=True, disabled=not selected):
        go_to(WizardStep.RECORDING)


def recording_page():
    st.title("🔴 Record Meeting")
    state = wizard()
    session = st.session_state.recording_session

    if session is None or not session.is_recording:
        if st.button("🔴 Start Recording", type="primary", use_container_width=True):
            devices = [dev for dev in AudioCapture().list_devices() if dev["index"] in state.selected_devices]
            session = RecordingSession(devices, output_dir=ConfigManager.get("RECORDINGS_DIR"))
            try:
                session.start()
            except ValueError as e:
                st.error(f"❌ {e}")
                return
            st.session_state.recording_session = session
            st.rerun()

        st.markdown("---")
        uploaded = st.file_uploader("Or upload an existing recording", type=["wav", "mp3", "m4a", "webm", "ogg"])
        if uploaded is not None and st.button("Use this file ➡️", use_container_width=True):
            output_dir = Path(ConfigManager.get("RECORDINGS_DIR"))
            output_dir.mkdir(parents=True, exist_ok=True)
            path = output_dir / uploaded.name
            path.write_bytes(uploaded.getvalue())
            state.set_recording(str(path))
            go_to(WizardStep.PROCESSING)
        return

    col1, col2 = st.columns(2)
    with col1:
        st.metric("Recording Time", session.format_elapsed())
    with col2:
        st.progress(min(session.level * 5, 1.0), text="Input level")
    st.caption("Microphones: " + ", ".join(session.device_names))

    if st.button("⏹️ Stop Recording", type="secondary", use_container_width=True):
        with st.spinner("Saving recording..."):
            path = session.stop()
        st.session_state.recording_session = None
        state.set_recording(path)
        go_to(WizardStep.PROCESSING)
        return

    st.info("🔴 Recording in progress... Click 'Stop Recording' when finished.")
    # Refresh the timer and level meter
    time.sleep(0.5)
    st.rerun()


def run_transcription_and_analysis(state: WizardState) -> bool:
    try:
        with st.spinner("Transcribing audio..."):
            result = client().transcribe(state.recording_path)
        transcription = Transcription.from_dict(result["transcription"])
        state.set_transcription(transcription.segments, result.get("audioFilePath"), result.get("audioUrl"))

        with st.spinner("Analyzing transcript..."):
            analysis = client().analyze_transcript(
                [seg.to_dict() for seg in state.segments], recording_id=state.recording_id
            )
        state.apply_analysis(
            [SegmentAnalysis.from_dict(a) for a in analysis.get("analysis", [])],
            [DetectedSpeaker.from_dict(d) for d in analysis.get("detectedSpeakers", [])],
        )
    except (RequestException, FileNotFoundError) as e:
        st.error(f"❌ Processing failed: {e}")
        return False
    return True


def processing_page():
    st.title("📝 Review Transcript")
    state = wizard()

    if not state.segments:
        if not state.recording_path:
            st.error("❌ No recording to process")
            return
        if not run_transcription_and_analysis(state):
            if st.button("🔄 Retry", use_container_width=True):
                st.rerun()
            return
        if not state.segments:
            st.warning("⚠️ No speech was detected in the recording")
            return

    st.caption(f"{len(state.selected_indices)} of {len(state.segments)} segments selected for the minutes")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Select all", use_container_width=True):
            state.select_all()
            st.rerun()
    with col2:
        if st.button("Select none", use_container_width=True):
            state.select_none()
            st.rerun()

    for idx, seg in enumerate(state.segments):
        entry = state.analysis_for(idx)
        badge = "💼 Work" if entry is None or entry.is_work_related else "☕ Casual"
        topic = f" · {entry.topic}" if entry else ""
        checked = st.checkbox(
            f"[{format_timestamp(seg.start)}] {seg.text}",
            value=idx in state.selected_indices,
            key=f"segment_{idx}_{state.recording_id}",
            help=f"{badge}{topic}",
        )
        if checked != (idx in state.selected_indices):
            state.toggle_segment(idx)

    st.markdown("---")
    if st.button("✨ Generate Summary", type="primary", use_container_width=True, disabled=not state.selected_indices):
        try:
            with st.spinner("Generating summary..."):
                result = client().generate_summary(state.filtered_transcript(), state.recording_id)
        except RequestException as e:
            st.error(f"❌ {e}")
            return
        state.set_summary(MeetingSummary.from_dict(result["summary"]))
        st.session_state.sample_audio = {}
        st.session_state.sample_names = {}

    if state.summary is not None:
        st.subheader("Summary")
        st.write(state.summary.summary)
        if st.button("Continue ➡️", type="primary", use_container_width=True):
            go_to(WizardStep.SPEAKERS)


def speakers_page():
    st.title("🗣️ Who Is Speaking?")
    state = wizard()

    if not state.samples:
        try:
            with st.spinner("Selecting voice samples..."):
                result = client().extract_speaker_snippets(
                    state.recording_id,
                    state.selected_segments_payload(),
                    [d.to_dict() for d in state.detected_speakers],
                )
        except RequestException as e:
            st.error(f"❌ {e}")
            result = {}
        state.samples = [SpeakerSample.from_dict(s) for s in result.get("speakerSamples", [])]

    detected = {d.segment_index: d.name for d in state.detected_speakers}
    names = st.session_state.sample_names

    for sample in state.samples:
        with st.container(border=True):
            st.caption(f"[{format_timestamp(sample.start_time)}] {sample.text}")
            col1, col2 = st.columns([1, 2])
            with col1:
                if st.button("▶️ Play", key=f"play_{sample.sample_index}", use_container_width=True):
                    try:
                        audio = client().get_speaker_audio(state.recording_id, sample.start_time, sample.end_time)
                        st.session_state.sample_audio[sample.sample_index] = decode_data_url(audio["audioData"])
                    except RequestException as e:
                        st.error(f"❌ {e}")
                if sample.sample_index in st.session_state.sample_audio:
                    st.audio(st.session_state.sample_audio[sample.sample_index], format="audio/mpeg")
            with col2:
                names[sample.sample_index] = st.text_input(
                    "Speaker name",
                    value=names.get(sample.sample_index, detected.get(sample.segment_index, "")),
                    key=f"name_{sample.sample_index}",
                )

    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button("✅ Apply Names", type="primary", use_container_width=True, disabled=not state.samples):
            state.assign_from_samples({idx: name for idx, name in names.items() if name.strip()})
            go_to(WizardStep.EXPORT)
    with col2:
        if st.button("🤖 Infer From Context", use_container_width=True, disabled=not any(names.values())):
            labels = {
                sample.segment_index: names[sample.sample_index]
                for sample in state.samples
                if names.get(sample.sample_index, "").strip()
            }
            try:
                with st.spinner("Identifying speakers..."):
                    result = client().identify_speakers([seg.to_dict() for seg in state.segments], labels)
            except RequestException as e:
                st.error(f"❌ {e}")
                return
            state.apply_speaker_map({item["segmentIndex"]: item["speaker"] for item in result.get("speakerMap", [])})
            go_to(WizardStep.EXPORT)
    with col3:
        if st.button("⏭️ Skip", use_container_width=True):
            state.skip_speakers()
            go_to(WizardStep.EXPORT)


def export_page():
    st.title("📄 Export Minutes")
    state = wizard()

    title = st.text_input("Meeting title", placeholder="Meeting")
    meeting_date = st.date_input("Meeting date", value=date.today())
    participants = st.text_area("Participants (one per line)")
    pdf = st.checkbox("Also export PDF", value=False)

    with st.expander("Review", expanded=True):
        summary = state.summary
        st.markdown(f"**Summary:** {summary.summary}")
        if summary.key_points:
            st.markdown("**Key points**")
            for point in summary.key_points:
                st.markdown(f"- {point}")
        if summary.action_items:
            st.markdown("**Action items**")
            for n, item in enumerate(summary.action_items, 1):
                st.markdown(f"{n}. {item.task} ({item.assignee}, {item.deadline})")

    if st.button("📄 Generate Documents", type="primary", use_container_width=True):
        export = state.build_export(title, meeting_date, participants, {"word": True, "pdf": pdf})
        try:
            with st.spinner("Generating documents..."):
                result = client().generate_documents(export.to_dict(), state.recording_id)
                downloads = {}
                if "summaryUrl" not in result:
                    # Local files can be downloaded only once
                    for doc_type in ("summary", "transcript"):
                        filename = result[f"{doc_type}FileName"]
                        downloads[doc_type] = (filename, client().download(doc_type, filename))
        except RequestException as e:
            st.error(f"❌ {e}")
            return
        st.session_state.export_result = result
        st.session_state.downloads = downloads

    result = st.session_state.export_result
    if result:
        st.success("✅ Documents generated")
        if result.get("pdfNote"):
            st.info(result["pdfNote"])
        if "summaryUrl" in result:
            st.markdown(f"[📄 {result['summaryFileName']}]({result['summaryUrl']})")
            st.markdown(f"[📄 {result['transcriptFileName']}]({result['transcriptUrl']})")
        for doc_type, (filename, content) in st.session_state.downloads.items():
            st.download_button(
                f"⬇️ Download {doc_type}",
                data=content,
                file_name=filename,
                mime="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
                use_container_width=True,
            )

        if st.button("🆕 Start New Meeting", use_container_width=True):
            if state.recording_id:
                try:
                    client().delete_recording(state.recording_id)
                except RequestException as e:
                    logger.warning(f"Could not delete recording {state.recording_id}: {e}")
            if state.recording_path and os.path.exists(state.recording_path):
                os.remove(state.recording_path)
            state.reset()
            st.session_state.export_result = None
            st.session_state.downloads = {}
            st.rerun()


PAGES = {
    WizardStep.LOGIN: login_page,
    WizardStep.API_KEY: api_key_page,
    WizardStep.MICROPHONE: microphone_page,
    WizardStep.RECORDING: recording_page,
    WizardStep.PROCESSING: processing_page,
    WizardStep.SPEAKERS: speakers_page,
    WizardStep.EXPORT: export_page,
}


def main():
    """Main application entry point."""
    initialize_session_state()
    state = wizard()

    with st.sidebar:
        st.title("🎙️ MinuteMaster")
        st.progress(state.progress, text=f"Step {state.step.value} of {len(WizardStep)}: {state.step.label}")

        for step in WizardStep:
            if step == WizardStep.LOGIN and not state.require_auth:
                continue
            icon = "▶️" if step == state.step else ("✅" if step.value < state.step.value else "⬜")
            if st.button(f"{icon} {step.label}", key=f"nav_{step.name}", disabled=not state.can_enter(step)):
                go_to(step)

        st.markdown("---")
        st.subheader("Server Status")
        if check_api_connection():
            st.success("🟢 API Server Connected")
        else:
            st.error("🔴 API Server Disconnected")
        st.caption(f"API URL: {ConfigManager.get('API_BASE_URL', st.session_state.ui_api_base_url)}")

        if state.require_auth and state.authenticated:
            st.caption(f"Signed in as {state.email}")
            if st.button("Sign out", use_container_width=True):
                try:
                    client().logout()
                except RequestException as e:
                    logger.warning(f"Logout failed: {e}")
                state.logout()
                st.rerun()

    PAGES[state.step]()


if __name__ == "__main__":
    main()
