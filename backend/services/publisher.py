"""Upload finished artifacts, resolve their URLs and write the snap record."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from google.api_core import exceptions as gexc

from models import MediaEditRequest, PipelineRun, SnapRecord, ThumbnailArtifact, VideoArtifact
from services.config import Settings
from services.errors import PublishError, TaskCancelled
from services.gcs import GcsBlobStore, snap_media_key
from services.records import FirestoreRecordStore

logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPE = "video/webm"
THUMBNAIL_CONTENT_TYPE = "image/png"


class ResultPublisher:
    """
    Publishes one run's artifacts.

    Ordering: video upload, thumbnail upload, URL resolution, record write.
    The record is only written after both objects exist, so readers never see
    a snap pointing at missing media. A crash between upload and record leaves
    unreferenced objects behind; services.reconcile sweeps those.
    """

    def __init__(self, blobs: GcsBlobStore, records: FirestoreRecordStore, settings: Settings) -> None:
        self._blobs = blobs
        self._records = records
        self._settings = settings

    def _upload(self, local_path: Path, key: str, content_type: str) -> None:
        try:
            self._blobs.upload_create_only(local_path, key, content_type=content_type)
        except gexc.PreconditionFailed as exc:
            raise PublishError(f"refusing to overwrite existing object {key}") from exc
        except gexc.GoogleAPIError as exc:
            raise PublishError(f"upload of {key} failed: {exc}") from exc
        logger.info("[publisher] Uploaded %s", key)

    def _resolve_url(self, key: str) -> str:
        try:
            return self._blobs.download_url(key)
        except gexc.GoogleAPIError as exc:
            raise PublishError(f"could not resolve download URL for {key}: {exc}") from exc

    def publish(
        self,
        run: PipelineRun,
        request: MediaEditRequest,
        date: str,
        video: VideoArtifact,
        thumbnail: ThumbnailArtifact,
        *,
        cancel: threading.Event | None = None,
    ) -> SnapRecord:
        try:
            record_id = self._records.allocate_snap_id(run.uid, run.diary_id)
        except gexc.GoogleAPIError as exc:
            raise PublishError(f"could not allocate snap id: {exc}") from exc

        root = self._settings.media_root
        video_key = snap_media_key(root, run.diary_id, record_id, video.local_path.name)
        thumbnail_key = snap_media_key(root, run.diary_id, record_id, thumbnail.local_path.name)

        self._upload(video.local_path, video_key, VIDEO_CONTENT_TYPE)
        self._upload(thumbnail.local_path, thumbnail_key, THUMBNAIL_CONTENT_TYPE)
        video_url = self._resolve_url(video_key)
        thumbnail_url = self._resolve_url(thumbnail_key)

        if cancel is not None and cancel.is_set():
            raise TaskCancelled(f"run cancelled before writing snap {record_id}")

        record = SnapRecord(
            id=record_id,
            date=date,
            media_length_sec=run.effective_trim_length_sec,
            video_url=video_url,
            thumbnail_url=thumbnail_url,
            is_thumbnail_dark=thumbnail.is_dark,
        )
        try:
            self._records.create_snap(run.uid, run.diary_id, record)
        except gexc.GoogleAPIError as exc:
            raise PublishError(f"could not write snap {record_id}: {exc}") from exc
        logger.info("[publisher] Snap %s written for diary %s", record_id, run.diary_id)

        try:
            self._records.set_last_snap_length(run.uid, request.trim_length_sec)
        except gexc.GoogleAPIError as exc:
            logger.warning("[publisher] Could not update lastSnapLength for %s: %s", run.uid, exc)
        return record
