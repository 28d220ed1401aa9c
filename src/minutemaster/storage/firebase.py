"""
Firebase initialisation.

Firestore and Cloud Storage are optional: when the service account file is
missing the server falls back to local JSON and directory storage.
"""

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials, firestore, storage

logger = logging.getLogger(__name__)


@dataclass
class FirebaseHandles:
    """Firestore client and Storage bucket of an initialised Firebase app."""

    db: Any
    bucket: Any


def init_firebase(credentials_path: str, bucket_name: str) -> Optional[FirebaseHandles]:
    """
    Initialise the default Firebase app once.

    Args:
        credentials_path: Service account JSON file
        bucket_name: Cloud Storage bucket for audio and documents

    Returns:
        FirebaseHandles, or None when the credentials file does not exist
    """
    if not credentials_path or not os.path.exists(credentials_path):
        logger.warning("Firebase credentials not found; using local storage")
        return None

    try:
        app = firebase_admin.get_app()
    except ValueError:
        cred = credentials.Certificate(credentials_path)
        app = firebase_admin.initialize_app(cred, {"storageBucket": bucket_name})
        logger.info(f"Firebase initialized (bucket: {bucket_name})")

    return FirebaseHandles(db=firestore.client(app), bucket=storage.bucket(app=app))


def is_configured(handles: Optional[FirebaseHandles]) -> bool:
    return handles is not None


def signed_url(blob, days: int) -> str:
    """Create a signed read URL valid for the given number of days (v2 signing allows more than 7 days)."""
    return blob.generate_signed_url(version="v2", expiration=timedelta(days=days), method="GET")


def server_timestamp():
    return firestore.SERVER_TIMESTAMP
