"""
Flask API server for MinuteMaster.

Provides the JSON API used by the recording wizard: authentication, OpenAI
key setup, transcription, analysis, summaries, speaker assignment and
document export.
"""

from .app import configure_logging, create_app, main
from .processor import MeetingProcessor, OpenAIServices
from .recordings import RecordingNotFound, RecordingStage, RecordingStore
from .state import GLOBAL_OWNER, ServerState

__all__ = [
    "create_app",
    "configure_logging",
    "main",
    "MeetingProcessor",
    "OpenAIServices",
    "RecordingStore",
    "RecordingStage",
    "RecordingNotFound",
    "ServerState",
    "GLOBAL_OWNER",
]
