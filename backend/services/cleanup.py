"""Remove a run's workspace and consumed upload token."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from google.api_core import exceptions as gexc

from services.errors import CleanupError
from services.records import FirestoreRecordStore

logger = logging.getLogger(__name__)


class CleanupManager:
    def __init__(self, records: FirestoreRecordStore) -> None:
        self._records = records

    def cleanup(self, workspace: Path | None, token: str | None) -> None:
        """
        Idempotent teardown; a missing workspace or token is not an error.

        Both removals are attempted before any failure is raised.
        """
        failures: list[str] = []
        if workspace is not None and workspace.exists():
            try:
                shutil.rmtree(workspace)
                logger.info("[cleanup] Working temp folder %s cleaned", workspace)
            except OSError as exc:
                failures.append(f"workspace {workspace}: {exc}")

        if token is not None:
            try:
                self._records.delete_upload_session(token)
                logger.info("[cleanup] Upload token %s deleted", token)
            except gexc.GoogleAPIError as exc:
                failures.append(f"upload token {token}: {exc}")

        if failures:
            raise CleanupError("cleanup failed: " + "; ".join(failures))
