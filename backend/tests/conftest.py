"""In-memory blob/record stores and synthetic clips shared by the pipeline tests."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from fractions import Fraction
from pathlib import Path
from typing import Any, Callable

import av
import httpx
import numpy as np
import pytest
from google.api_core import exceptions as gexc

from models import SnapRecord, UploadSession
from services.config import Settings
from services.gcs import DOWNLOAD_TOKEN_METADATA_KEY, StoredObject

SIGNED_URL_HOST = "signed.storage.test"


@dataclass
class _Blob:
    data: bytes
    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FakeBlobStore:
    def __init__(self, bucket_name: str = "test-bucket") -> None:
        self.bucket_name = bucket_name
        self.objects: dict[str, _Blob] = {}
        self.upload_order: list[str] = []

    def put(self, key: str, data: bytes, *, updated: datetime | None = None) -> None:
        blob = _Blob(data=data)
        if updated is not None:
            blob.updated = updated
        self.objects[key] = blob

    def generate_signed_url(self, key: str, *, expiration_seconds: float, method: str = "GET") -> str:
        if key not in self.objects:
            raise gexc.NotFound(f"{key} does not exist")
        return f"https://{SIGNED_URL_HOST}/{key}"

    def upload_create_only(self, local_path: Path, key: str, *, content_type: str) -> None:
        if key in self.objects:
            raise gexc.PreconditionFailed(f"{key} already exists")
        self.objects[key] = _Blob(
            data=Path(local_path).read_bytes(),
            content_type=content_type,
            metadata={DOWNLOAD_TOKEN_METADATA_KEY: f"token-{len(self.objects)}"},
        )
        self.upload_order.append(key)

    def download_url(self, key: str) -> str:
        blob = self.objects.get(key)
        if blob is None:
            raise gexc.NotFound(f"{key} does not exist")
        return f"https://media.test/{key}?token={blob.metadata.get(DOWNLOAD_TOKEN_METADATA_KEY, '')}"

    def list_prefix(self, prefix: str) -> list[StoredObject]:
        return [StoredObject(key=k, updated=b.updated) for k, b in self.objects.items() if k.startswith(prefix)]

    def delete(self, key: str) -> None:
        self.objects.pop(key, None)

    def transport(self) -> httpx.MockTransport:
        """Serves signed URLs from the in-memory objects."""

        def handler(request: httpx.Request) -> httpx.Response:
            blob = self.objects.get(request.url.path.lstrip("/"))
            if blob is None:
                return httpx.Response(404)
            return httpx.Response(200, content=blob.data)

        return httpx.MockTransport(handler)


class FakeRecordStore:
    def __init__(self) -> None:
        self.tokens: dict[str, UploadSession] = {}
        self.snaps: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.deleted_tokens: list[str] = []
        self.diaries: set[tuple[str, str]] = set()
        self.delete_error: Exception | None = None
        self._ids = itertools.count(1)

    def issue_token(self, token: str, owner: str, *, issued_at: datetime | None = None) -> None:
        self.tokens[token] = UploadSession(
            token=token,
            owner=owner,
            expiry=issued_at or datetime.now(timezone.utc),
        )

    def get_upload_session(self, token: str) -> UploadSession | None:
        return self.tokens.get(token)

    def delete_upload_session(self, token: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.tokens.pop(token, None)
        self.deleted_tokens.append(token)

    def allocate_snap_id(self, uid: str, diary_id: str) -> str:
        return f"snap-{next(self._ids)}"

    def create_snap(self, uid: str, diary_id: str, record: SnapRecord) -> None:
        key = (uid, diary_id, record.id)
        if key in self.snaps:
            raise gexc.AlreadyExists(f"snap {record.id} exists")
        self.snaps[key] = record.to_document()

    def snap_exists(self, uid: str, diary_id: str, snap_id: str) -> bool:
        return (uid, diary_id, snap_id) in self.snaps

    def add_diary(self, uid: str, diary_id: str) -> None:
        self.diaries.add((uid, diary_id))

    def diary_exists(self, uid: str, diary_id: str) -> bool:
        return (uid, diary_id) in self.diaries

    def set_last_snap_length(self, uid: str, length_sec: float) -> None:
        self.profiles.setdefault(uid, {})["lastSnapLength"] = length_sec


def write_clip(
    path: Path,
    *,
    seconds: float,
    fps: int = 10,
    width: int = 64,
    height: int = 48,
    level: Callable[[float], int] | int = 128,
) -> Path:
    """Encode a silent WebM clip whose frames are uniform grey at ``level(t)``."""
    level_at = level if callable(level) else (lambda _t: level)
    with av.open(str(path), mode="w", format="webm") as container:
        stream = container.add_stream("libvpx", rate=fps)
        stream.width = width
        stream.height = height
        stream.pix_fmt = "yuv420p"
        for index in range(int(seconds * fps)):
            value = level_at(index / fps)
            rgb = np.full((height, width, 3), value, dtype=np.uint8)
            frame = av.VideoFrame.from_ndarray(rgb, format="rgb24").reformat(format="yuv420p")
            frame.pts = index
            frame.time_base = Fraction(1, fps)
            for packet in stream.encode(frame):
                container.mux(packet)
        for packet in stream.encode():
            container.mux(packet)
    return path


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        bucket_name="test-bucket",
        media_root="diary-media",
        workspace_root=tmp_path / "workspaces",
        run_timeout_seconds=60.0,
        auth_jwt_secret="test-secret-for-integration-tests",
    )


@pytest.fixture
def stale() -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=2)
