"""Sweep artifacts that were uploaded but never got a snap record."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from services.errors import NotFound
from services.gcs import GcsBlobStore, StoredObject, snap_media_prefix
from services.records import FirestoreRecordStore

logger = logging.getLogger(__name__)


def sweep_orphaned_media(
    blobs: GcsBlobStore,
    records: FirestoreRecordStore,
    uid: str,
    diary_id: str,
    *,
    media_root: str,
    grace_seconds: float,
    now: datetime | None = None,
) -> list[str]:
    """
    Delete ``{media_root}/{diary_id}/{record_id}/*`` groups with no snap record.

    A group is only touched once its newest object is older than
    ``grace_seconds``, so runs that are still publishing are left alone.
    Returns the deleted object keys.

    :raises NotFound: when ``diary_id`` is not one of ``uid``'s diaries
    """
    if not records.diary_exists(uid, diary_id):
        raise NotFound(f"diary {diary_id} does not belong to {uid}")

    prefix = snap_media_prefix(media_root, diary_id)
    groups: dict[str, list[StoredObject]] = defaultdict(list)
    for obj in blobs.list_prefix(prefix):
        record_id = obj.key[len(prefix):].split("/", 1)[0]
        if record_id:
            groups[record_id].append(obj)

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=grace_seconds)
    deleted: list[str] = []
    for record_id, objects in groups.items():
        stamps = [obj.updated for obj in objects if obj.updated is not None]
        if not stamps or max(stamps) > cutoff:
            continue
        if records.snap_exists(uid, diary_id, record_id):
            continue
        for obj in objects:
            blobs.delete(obj.key)
            deleted.append(obj.key)
        logger.info("[reconcile] Deleted %d orphaned objects for diary=%s record=%s", len(objects), diary_id, record_id)
    return deleted
