"""
Shared server state: stores and per-owner OpenAI services.

With authentication enabled each logged-in user gets their own OpenAI
services built from their key; without it a single global owner is used.
"""

import logging
import os
import threading
from typing import Callable, Dict, Optional

from ..audio import validate_api_key
from ..config import ConfigStore
from ..storage import (
    FirebaseHandles,
    FirebaseMeetingStore,
    FirestoreUserStore,
    LocalMeetingStore,
    LocalUserStore,
    MeetingStore,
    UserStore,
    init_firebase,
)
from .processor import MeetingProcessor, OpenAIServices
from .recordings import RecordingStore

logger = logging.getLogger(__name__)

GLOBAL_OWNER = "__global__"

ServicesFactory = Callable[[str], OpenAIServices]
KeyValidator = Callable[[str], bool]


class ServerState:
    """Everything the routes need besides the Flask request."""

    def __init__(
        self,
        users: UserStore,
        meetings: MeetingStore,
        recordings: RecordingStore,
        config_store: ConfigStore,
        services_factory: ServicesFactory,
        key_validator: KeyValidator = validate_api_key,
        firebase: Optional[FirebaseHandles] = None,
    ):
        self.users = users
        self.meetings = meetings
        self.recordings = recordings
        self.config_store = config_store
        self.services_factory = services_factory
        self.key_validator = key_validator
        self.firebase = firebase

        self._services: Dict[str, OpenAIServices] = {}
        self._lock = threading.Lock()

    @property
    def firebase_configured(self) -> bool:
        return self.firebase is not None

    @classmethod
    def from_config(cls, config: Dict) -> "ServerState":
        """
        Build stores from Flask config values.

        Firebase is used when the credentials file exists; everything else
        lives under DATA_DIR.
        """
        data_dir = config["DATA_DIR"]
        os.makedirs(data_dir, exist_ok=True)

        firebase = init_firebase(config["FIREBASE_CREDENTIALS"], config["FIREBASE_STORAGE_BUCKET"])
        output_dir = os.path.join(data_dir, "temp-output")

        if firebase is not None:
            users: UserStore = FirestoreUserStore(firebase.db)
            meetings: MeetingStore = FirebaseMeetingStore(firebase.db, firebase.bucket, output_dir)
        else:
            users = LocalUserStore(os.path.join(data_dir, "users.json"))
            meetings = LocalMeetingStore(output_dir)

        llm_model = config["LLM_MODEL"]
        transcription_model = config["TRANSCRIPTION_MODEL"]
        base_url = config.get("LLM_API_BASE_URL") or None

        def services_factory(api_key: str) -> OpenAIServices:
            return OpenAIServices.from_api_key(
                api_key, llm_model=llm_model, transcription_model=transcription_model, base_url=base_url
            )

        def key_validator(api_key: str) -> bool:
            return validate_api_key(api_key, base_url=base_url)

        return cls(
            users=users,
            meetings=meetings,
            recordings=RecordingStore(config["RECORDINGS_DIR"]),
            config_store=ConfigStore(config["CONFIG_FILE"]),
            services_factory=services_factory,
            key_validator=key_validator,
            firebase=firebase,
        )

    def get_services(self, owner: str) -> Optional[OpenAIServices]:
        with self._lock:
            return self._services.get(owner)

    def init_services(self, owner: str, api_key: str) -> OpenAIServices:
        services = self.services_factory(api_key)
        with self._lock:
            self._services[owner] = services
        logger.info("OpenAI services initialized" + ("" if owner == GLOBAL_OWNER else " for logged-in user"))
        return services

    def clear_services(self, owner: str) -> None:
        with self._lock:
            self._services.pop(owner, None)

    def processor(self, owner: str) -> Optional[MeetingProcessor]:
        services = self.get_services(owner)
        if services is None:
            return None
        return MeetingProcessor(self.recordings, services)
