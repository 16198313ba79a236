"""
Snap ingestion pipeline controller.

One ``create_snap`` call is one run:

    Created -> Downloading -> Transcoding -> Publishing -> CleaningUp -> Completed | Failed

Video and thumbnail tasks run concurrently in executor threads against the
same source file. The first one to fail sets the run's cancel event so the
sibling stops early; the run fails with that first error. Cleanup runs on
every exit path, after all worker threads have settled.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, TypeVar

import httpx

from models import MediaEditRequest, PipelineRun, PipelineState, ProgressTick, SnapRecord
from models import ThumbnailArtifact, VideoArtifact
from services.cleanup import CleanupManager
from services.config import Settings
from services.downloader import Downloader, workspace_dir_for
from services.errors import CleanupError, TaskCancelled, Timeout, TransferError
from services.gcs import GcsBlobStore
from services.publisher import ResultPublisher
from services.records import FirestoreRecordStore
from services.thumbnail import SNAP_THUMBNAIL_PROFILE, ThumbnailProfile, render_thumbnail
from services.transcode import SNAP_VIDEO_PROFILE, VideoProfile, transcode_video

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProgressReporter:
    """Logs encoder progress only when the whole percentage goes up."""

    def __init__(self, token: str) -> None:
        self._token = token
        self._last_percent = -1

    @property
    def last_percent(self) -> int:
        return self._last_percent

    def __call__(self, tick: ProgressTick) -> None:
        percent = int(tick.fraction * 100)
        if percent > self._last_percent:
            self._last_percent = percent
            logger.info("[pipeline] Video process progress for %s: %d%%", self._token, percent)


class SnapPipeline:
    def __init__(
        self,
        blobs: GcsBlobStore,
        records: FirestoreRecordStore,
        settings: Settings,
        *,
        video_profile: VideoProfile = SNAP_VIDEO_PROFILE,
        thumbnail_profile: ThumbnailProfile = SNAP_THUMBNAIL_PROFILE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._video_profile = video_profile
        self._thumbnail_profile = thumbnail_profile
        self._downloader = Downloader(blobs, records, settings, transport=transport)
        self._publisher = ResultPublisher(blobs, records, settings)
        self._cleanup = CleanupManager(records)

    async def create_snap(
        self,
        uid: str,
        diary_id: str,
        upload_token: str,
        date: str,
        request: MediaEditRequest,
    ) -> SnapRecord:
        run = PipelineRun(
            uid=uid,
            diary_id=diary_id,
            token=upload_token,
            workspace_dir=workspace_dir_for(self._settings.workspace_root, upload_token),
            effective_trim_length_sec=request.effective_trim_length_sec,
        )
        logger.info(
            "[pipeline] Run started: uid=%s diary=%s token=%s start_ms=%d length=%.2fs (effective %.2fs)",
            uid,
            diary_id,
            upload_token,
            request.trim_start_ms,
            request.trim_length_sec,
            run.effective_trim_length_sec,
        )
        try:
            snap = await self._execute_with_deadline(run, request, date)
        except BaseException as exc:
            await self._teardown(run, failure=exc)
            raise
        await self._teardown(run, snap=snap)
        return snap

    def _transition(self, run: PipelineRun, state: PipelineState) -> None:
        logger.info("[pipeline] %s: %s -> %s", run.token, run.state, state)
        run.state = state

    def _offload(self, run: PipelineRun, func: Callable[..., T], *args: Any, **kwargs: Any) -> asyncio.Future[T]:
        """Run blocking work in the default executor and track it until teardown."""
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        run.workers.append(future)
        return future

    async def _execute_with_deadline(self, run: PipelineRun, request: MediaEditRequest, date: str) -> SnapRecord:
        timeout = self._settings.run_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                return await self._execute(run, request, date)
        except TimeoutError as exc:
            publish = run.publish
            if publish is not None:
                # The record may already be written; the publish outcome decides the run.
                run.cancel.set()
                await asyncio.wait([publish])
                if publish.exception() is None:
                    logger.warning("[pipeline] %s: deadline passed but snap was already published", run.token)
                    return publish.result()
            raise Timeout(f"run exceeded {timeout:.0f}s while {run.state}") from exc

    async def _execute(self, run: PipelineRun, request: MediaEditRequest, date: str) -> SnapRecord:
        self._transition(run, PipelineState.DOWNLOADING)
        await self._downloader.download(run, request)

        self._transition(run, PipelineState.TRANSCODING)
        video, thumbnail = await self._transcode(run, request)

        self._transition(run, PipelineState.PUBLISHING)
        run.publish = self._offload(
            run,
            self._publisher.publish,
            run,
            request,
            date,
            video,
            thumbnail,
            cancel=run.cancel,
        )
        # The publish thread keeps going on deadline expiry; teardown waits for it.
        return await asyncio.shield(run.publish)

    async def _transcode(self, run: PipelineRun, request: MediaEditRequest) -> tuple[VideoArtifact, ThumbnailArtifact]:
        if run.source_path is None:
            raise TransferError(f"no downloaded source for {run.token}")
        video = self._offload(
            run,
            transcode_video,
            run.source_path,
            run.workspace_dir,
            request,
            profile=self._video_profile,
            cancel=run.cancel,
            on_progress=ProgressReporter(run.token),
        )
        thumbnail = self._offload(
            run,
            render_thumbnail,
            run.source_path,
            run.workspace_dir,
            request,
            profile=self._thumbnail_profile,
            cancel=run.cancel,
        )

        first_error: BaseException | None = None
        pending: set[asyncio.Future[Any]] = {video, thumbnail}
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is None or isinstance(error, TaskCancelled) or first_error is not None:
                    continue
                first_error = error
                if pending:
                    logger.warning("[pipeline] %s: subtask failed, cancelling sibling: %s", run.token, error)
                run.cancel.set()
        if first_error is not None:
            raise first_error
        return video.result(), thumbnail.result()

    async def _teardown(
        self,
        run: PipelineRun,
        *,
        failure: BaseException | None = None,
        snap: SnapRecord | None = None,
    ) -> None:
        # Worker threads may still be writing into the workspace.
        run.cancel.set()
        if run.workers:
            await asyncio.wait(run.workers)

        if failure is not None:
            logger.error(
                "[pipeline] Run %s failed while %s (uid=%s diary=%s): %s",
                run.token,
                run.state,
                run.uid,
                run.diary_id,
                failure,
                exc_info=failure,
            )

        self._transition(run, PipelineState.CLEANING_UP)
        try:
            await asyncio.to_thread(
                self._cleanup.cleanup,
                run.workspace_dir if run.owns_workspace else None,
                run.token if run.owns_token else None,
            )
        except CleanupError as exc:
            self._transition(run, PipelineState.FAILED)
            if failure is not None:
                logger.error("[pipeline] Cleanup after failed run %s also failed: %s", run.token, exc)
                return
            logger.error("[pipeline] Snap %s published but cleanup failed: %s", snap.id if snap else None, exc)
            raise CleanupError(str(exc), snap=snap) from exc

        self._transition(run, PipelineState.FAILED if failure is not None else PipelineState.COMPLETED)
