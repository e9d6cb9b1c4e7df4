"""Preference storage on a Firestore user profile document.

Signed-in users keep their preferences in the `preferences` map of their
profile document instead of per-browser storage. Values stay strings so the
preference store treats both storages the same way.
"""

import logging
from typing import Any, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.field_path import FieldPath

from ..config.settings import settings
from .backends import KeyValueStorage
from .errors import QuotaExceededError, StorageUnavailableError

logger = logging.getLogger(__name__)

PREFERENCES_FIELD = "preferences"

# Firestore documents are limited to 1 MiB
MAX_DOCUMENT_BYTES = 1024 * 1024


class FirestoreProfileStorage(KeyValueStorage):
    """Key-value view over one user's profile document."""

    def __init__(self, user_id: str, client: Optional[Any] = None, collection: Optional[str] = None):
        """
        Args:
            user_id: Profile document id
            client: firestore.Client; created from settings if omitted
            collection: Profiles collection name (default from settings)
        """
        self.user_id = user_id
        if client is None:
            project = settings.firestore_project
            client = firestore.Client(project=project) if project else firestore.Client()
        self.db = client
        self.doc_ref = self.db.collection(collection or settings.profiles_collection).document(user_id)

    def _preferences(self) -> dict[str, Any]:
        try:
            doc = self.doc_ref.get()
        except gcp_exceptions.GoogleAPIError as e:
            raise StorageUnavailableError(f"profile {self.user_id} unreachable: {e}") from e
        if not doc.exists:
            return {}
        data = doc.to_dict() or {}
        prefs = data.get(PREFERENCES_FIELD) or {}
        return prefs if isinstance(prefs, dict) else {}

    def get_item(self, key: str) -> Optional[str]:
        value = self._preferences().get(key)
        return None if value is None else str(value)

    def set_item(self, key: str, value: str) -> None:
        if len(value.encode()) > MAX_DOCUMENT_BYTES:
            raise QuotaExceededError(f"value for {key} exceeds the profile document limit")
        try:
            self.doc_ref.set(
                {PREFERENCES_FIELD: {key: value}, "updated_at": firestore.SERVER_TIMESTAMP},
                merge=True,
            )
        except gcp_exceptions.ResourceExhausted as e:
            raise QuotaExceededError(str(e)) from e
        except gcp_exceptions.InvalidArgument as e:
            # Raised when the document grows past its size limit
            raise QuotaExceededError(str(e)) from e
        except gcp_exceptions.GoogleAPIError as e:
            raise StorageUnavailableError(f"profile {self.user_id} unreachable: {e}") from e

    def remove_item(self, key: str) -> None:
        if key not in self._preferences():
            return
        try:
            field_path = FieldPath(PREFERENCES_FIELD, key).to_api_repr()
            self.doc_ref.update({field_path: firestore.DELETE_FIELD})
        except gcp_exceptions.GoogleAPIError as e:
            raise StorageUnavailableError(f"profile {self.user_id} unreachable: {e}") from e

    def keys(self) -> list[str]:
        return list(self._preferences())
