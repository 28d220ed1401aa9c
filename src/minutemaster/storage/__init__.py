"""
Persistence for users, recordings and exported documents.

Firebase (Firestore plus Cloud Storage) is used when a service account is
configured; local JSON files and directories are used otherwise.
"""

from .firebase import FirebaseHandles, init_firebase, is_configured
from .meetings import FirebaseMeetingStore, LocalMeetingStore, MeetingStore
from .users import FirestoreUserStore, LocalUserStore, UserExistsError, UserStore

__all__ = [
    "FirebaseHandles",
    "init_firebase",
    "is_configured",
    "MeetingStore",
    "LocalMeetingStore",
    "FirebaseMeetingStore",
    "UserStore",
    "LocalUserStore",
    "FirestoreUserStore",
    "UserExistsError",
]
