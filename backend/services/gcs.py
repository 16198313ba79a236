"""GCS blob store: signed reads, create-only uploads and durable download URLs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from urllib.parse import quote

from google.api_core import exceptions as gexc

DOWNLOAD_TOKEN_METADATA_KEY = "firebaseStorageDownloadTokens"
DOWNLOAD_URL_TEMPLATE = "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{key}?alt=media&token={token}"


def temp_upload_key(upload_token: str, filename: str) -> str:
    """Object path the client uploads the raw clip to."""
    return f"temp/{upload_token}/{filename}"


def snap_media_prefix(media_root: str, diary_id: str, record_id: str | None = None) -> str:
    """Prefix the cascade listeners delete when a diary or snap goes away."""
    if record_id is None:
        return f"{media_root}/{diary_id}/"
    return f"{media_root}/{diary_id}/{record_id}/"


def snap_media_key(media_root: str, diary_id: str, record_id: str, filename: str) -> str:
    return snap_media_prefix(media_root, diary_id, record_id) + filename


@dataclass(frozen=True)
class StoredObject:
    key: str
    updated: datetime | None


class GcsBlobStore:
    """
    Thin wrapper around one GCS bucket.

    The storage client is created lazily so unit tests can inject a fake
    through ``client=`` without importing google.cloud.storage.
    """

    def __init__(self, bucket_name: str, *, client: Any | None = None) -> None:
        self._bucket_name = bucket_name
        self._client = client

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    def _storage_client(self) -> Any:
        if self._client is None:
            from google.cloud import storage  # noqa: PLC0415

            self._client = storage.Client()
        return self._client

    def _bucket(self) -> Any:
        return self._storage_client().bucket(self._bucket_name)

    def generate_signed_url(
        self,
        key: str,
        *,
        expiration_seconds: float,
        method: str = "GET",
    ) -> str:
        """
        Signed URL for an existing object.

        :raises google.api_core.exceptions.NotFound: when no object exists at ``key``
        """
        blob = self._bucket().blob(key)
        if not blob.exists():
            raise gexc.NotFound(f"gs://{self._bucket_name}/{key} does not exist")
        expiration = datetime.now(timezone.utc) + timedelta(seconds=expiration_seconds)
        return blob.generate_signed_url(
            expiration=expiration,
            method=method,
            version="v4",
        )

    def upload_create_only(self, local_path: Path, key: str, *, content_type: str) -> None:
        """
        Upload a file only if nothing exists at ``key`` yet.

        The download token is attached in the same write, so the object is
        URL-addressable as soon as it exists.

        :raises google.api_core.exceptions.PreconditionFailed: when ``key`` is taken
        """
        blob = self._bucket().blob(key)
        blob.metadata = {DOWNLOAD_TOKEN_METADATA_KEY: str(uuid.uuid4())}
        blob.upload_from_filename(
            str(local_path),
            content_type=content_type,
            if_generation_match=0,
        )

    def download_url(self, key: str) -> str:
        """
        Durable token URL for a stored object, minting a token if it has none.

        :raises google.api_core.exceptions.NotFound: when no object exists at ``key``
        """
        blob = self._bucket().get_blob(key)
        if blob is None:
            raise gexc.NotFound(f"gs://{self._bucket_name}/{key} does not exist")
        metadata = dict(blob.metadata or {})
        token = (metadata.get(DOWNLOAD_TOKEN_METADATA_KEY) or "").split(",")[0]
        if not token:
            token = str(uuid.uuid4())
            metadata[DOWNLOAD_TOKEN_METADATA_KEY] = token
            blob.metadata = metadata
            blob.patch()
        return DOWNLOAD_URL_TEMPLATE.format(
            bucket=self._bucket_name,
            key=quote(key, safe=""),
            token=token,
        )

    def list_prefix(self, prefix: str) -> list[StoredObject]:
        blobs = self._storage_client().list_blobs(self._bucket_name, prefix=prefix)
        return [StoredObject(key=blob.name, updated=blob.updated) for blob in blobs]

    def delete(self, key: str) -> None:
        try:
            self._bucket().blob(key).delete()
        except gexc.NotFound:
            pass
