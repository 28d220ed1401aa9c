"""
User accounts for the login step.

A user record holds the email, a bcrypt password hash, the user's
machine-encrypted OpenAI key (if saved) and login timestamps:

    {email, passwordHash, encryptedApiKey, createdAt, lastLogin}

Records live in the Firestore "users" collection when Firebase is configured
and in a local JSON file otherwise.
"""

import json
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .firebase import server_timestamp

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


class UserExistsError(Exception):
    """Raised when creating a user whose email is already registered."""


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class UserStore:
    """Interface shared by the Firestore and local user stores."""

    def get_user(self, email: str) -> Optional[Dict[str, Any]]:
        """Return the user record (with an "id" key) or None."""
        raise NotImplementedError

    def create_user(self, email: str, password_hash: str) -> str:
        """Create a user and return its id. Raises UserExistsError for duplicates."""
        raise NotImplementedError

    def update_last_login(self, user_id: str) -> None:
        raise NotImplementedError

    def set_encrypted_api_key(self, user_id: str, value: Optional[str]) -> None:
        raise NotImplementedError

    def get_encrypted_api_key(self, user_id: str) -> Optional[str]:
        raise NotImplementedError


class LocalUserStore(UserStore):
    """Users stored in a JSON file, keyed by user id."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Could not read user store {self.path}: {e}")
            return {}
        return data.get("users", {}) if isinstance(data, dict) else {}

    def _save(self, users: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"users": users}, f, ensure_ascii=False, indent=2)

    def get_user(self, email: str) -> Optional[Dict[str, Any]]:
        email = normalize_email(email)
        for user_id, record in self._load().items():
            if record.get("email") == email:
                return {"id": user_id, **record}
        return None

    def create_user(self, email: str, password_hash: str) -> str:
        email = normalize_email(email)
        with self._lock:
            users = self._load()
            if any(record.get("email") == email for record in users.values()):
                raise UserExistsError(f"User {email} already exists")

            user_id = str(uuid.uuid4())
            users[user_id] = {
                "email": email,
                "passwordHash": password_hash,
                "encryptedApiKey": None,
                "createdAt": datetime.now().isoformat(),
                "lastLogin": None,
            }
            self._save(users)

        logger.info(f"Created local user {email}")
        return user_id

    def _update(self, user_id: str, **fields: Any) -> None:
        with self._lock:
            users = self._load()
            if user_id not in users:
                raise KeyError(f"User {user_id} not found")
            users[user_id].update(fields)
            self._save(users)

    def update_last_login(self, user_id: str) -> None:
        self._update(user_id, lastLogin=datetime.now().isoformat())

    def set_encrypted_api_key(self, user_id: str, value: Optional[str]) -> None:
        self._update(user_id, encryptedApiKey=value)

    def get_encrypted_api_key(self, user_id: str) -> Optional[str]:
        record = self._load().get(user_id)
        return record.get("encryptedApiKey") if record else None


class FirestoreUserStore(UserStore):
    """Users stored in the Firestore "users" collection."""

    def __init__(self, db):
        self.db = db

    @property
    def collection(self):
        return self.db.collection(USERS_COLLECTION)

    def get_user(self, email: str) -> Optional[Dict[str, Any]]:
        docs = self.collection.where("email", "==", normalize_email(email)).limit(1).get()
        for doc in docs:
            return {"id": doc.id, **doc.to_dict()}
        return None

    def create_user(self, email: str, password_hash: str) -> str:
        email = normalize_email(email)
        if self.get_user(email) is not None:
            raise UserExistsError(f"User {email} already exists")

        _, doc_ref = self.collection.add(
            {
                "email": email,
                "passwordHash": password_hash,
                "encryptedApiKey": None,
                "createdAt": server_timestamp(),
                "lastLogin": None,
            }
        )
        logger.info(f"Created Firestore user {email}")
        return doc_ref.id

    def update_last_login(self, user_id: str) -> None:
        self.collection.document(user_id).update({"lastLogin": server_timestamp()})

    def set_encrypted_api_key(self, user_id: str, value: Optional[str]) -> None:
        self.collection.document(user_id).update({"encryptedApiKey": value})

    def get_encrypted_api_key(self, user_id: str) -> Optional[str]:
        snapshot = self.collection.document(user_id).get()
        if not snapshot.exists:
            return None
        return (snapshot.to_dict() or {}).get("encryptedApiKey")
