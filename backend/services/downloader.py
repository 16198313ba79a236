"""Fetch the uploaded temp clip into a fresh per-run workspace."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx
from google.api_core import exceptions as gexc

from models import MediaEditRequest, PipelineRun
from services.config import Settings
from services.errors import NotFound, TransferError
from services.gcs import GcsBlobStore, temp_upload_key
from services.records import FirestoreRecordStore

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 256 * 1024


def workspace_dir_for(workspace_root: Path, upload_token: str) -> Path:
    return workspace_root / f"temp_upload_{upload_token}"


class Downloader:
    def __init__(
        self,
        blobs: GcsBlobStore,
        records: FirestoreRecordStore,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._blobs = blobs
        self._records = records
        self._settings = settings
        self._transport = transport

    async def claim_session(self, run: PipelineRun) -> None:
        """Check the upload token exists, belongs to the caller and has not expired."""
        session = await asyncio.to_thread(self._records.get_upload_session, run.token)
        if session is None:
            raise NotFound(f"upload token {run.token} does not exist")
        if session.owner != run.uid:
            raise NotFound(f"upload token {run.token} is not owned by {run.uid}")
        run.owns_token = True
        if session.is_expired(self._settings.upload_token_ttl_seconds):
            raise NotFound(f"upload token {run.token} expired at {session.expiry.isoformat()}")

    async def download(self, run: PipelineRun, request: MediaEditRequest) -> Path:
        """
        Stream ``temp/{token}/{filename}`` into the run's workspace.

        Creates the workspace directory; call once per run.
        """
        await self.claim_session(run)

        key = temp_upload_key(run.token, request.source_filename)
        try:
            url = await asyncio.to_thread(
                self._blobs.generate_signed_url,
                key,
                expiration_seconds=self._settings.signed_url_expiration_seconds,
            )
        except gexc.NotFound as exc:
            raise NotFound(f"no uploaded object at {key}") from exc
        logger.info("[downloader] Signed URL generated for %s", key)

        try:
            run.workspace_dir.mkdir(parents=True, exist_ok=False)
        except FileExistsError as exc:
            raise NotFound(f"upload token {run.token} is already being processed") from exc
        run.owns_workspace = True

        destination = run.workspace_dir / request.source_filename
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code == 404:
                        raise NotFound(f"uploaded object at {key} disappeared before download")
                    response.raise_for_status()
                    # Disk writes run in the executor, off the event loop.
                    fh = await asyncio.to_thread(destination.open, "wb")
                    try:
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                            await asyncio.to_thread(fh.write, chunk)
                    finally:
                        await asyncio.to_thread(fh.close)
        except (httpx.HTTPError, OSError) as exc:
            raise TransferError(f"download of {key} failed: {exc}") from exc

        run.source_path = destination
        logger.info("[downloader] Downloaded %s to %s (%d bytes)", key, destination, destination.stat().st_size)
        return destination
