"""Firestore record store: upload tokens, snap documents and user profiles."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from models import SnapRecord, UploadSession

UPLOAD_TOKENS_COLLECTION = "uploadTokens"
_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def snaps_collection_path(uid: str, diary_id: str) -> str:
    return f"users/{uid}/diaries/{diary_id}/snaps"


class FirestoreRecordStore:
    def __init__(self, *, client: Any | None = None) -> None:
        self._client = client

    def _db(self) -> Any:
        if self._client is None:
            from google.cloud import firestore  # noqa: PLC0415

            self._client = firestore.Client()
        return self._client

    def get_upload_session(self, token: str) -> UploadSession | None:
        snapshot = self._db().collection(UPLOAD_TOKENS_COLLECTION).document(token).get()
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        valid_until = data.get("validUntil")
        if not isinstance(valid_until, datetime):
            # Unstamped tokens are treated as already expired.
            valid_until = _EPOCH
        elif valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=timezone.utc)
        return UploadSession(token=token, owner=str(data.get("owner", "")), expiry=valid_until)

    def delete_upload_session(self, token: str) -> None:
        # Deleting a missing document is a no-op in Firestore.
        self._db().collection(UPLOAD_TOKENS_COLLECTION).document(token).delete()

    def allocate_snap_id(self, uid: str, diary_id: str) -> str:
        return self._db().collection(snaps_collection_path(uid, diary_id)).document().id

    def create_snap(self, uid: str, diary_id: str, record: SnapRecord) -> None:
        """Write the snap document; fails if a document with this id already exists."""
        doc = self._db().collection(snaps_collection_path(uid, diary_id)).document(record.id)
        doc.create(record.to_document())

    def snap_exists(self, uid: str, diary_id: str, snap_id: str) -> bool:
        doc = self._db().collection(snaps_collection_path(uid, diary_id)).document(snap_id)
        return bool(doc.get().exists)

    def set_last_snap_length(self, uid: str, length_sec: float) -> None:
        self._db().document(f"users/{uid}").set({"lastSnapLength": length_sec}, merge=True)

    def diary_exists(self, uid: str, diary_id: str) -> bool:
        return bool(self._db().document(f"users/{uid}/diaries/{diary_id}").get().exists)
