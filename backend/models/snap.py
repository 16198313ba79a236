import threading
from asyncio import Future
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any


class PipelineState(StrEnum):
    CREATED = "created"
    DOWNLOADING = "downloading"
    TRANSCODING = "transcoding"
    PUBLISHING = "publishing"
    CLEANING_UP = "cleaning_up"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PipelineRun:
    uid: str
    diary_id: str
    token: str
    workspace_dir: Path
    source_path: Path | None = None
    effective_trim_length_sec: float = 0.0
    state: PipelineState = PipelineState.CREATED
    owns_workspace: bool = False           # set once this run created the directory
    owns_token: bool = False               # set once the token is verified as the caller's
    cancel: threading.Event = field(default_factory=threading.Event)
    workers: list[Future[Any]] = field(default_factory=list)
    publish: Future[Any] | None = None     # set once the record write may be underway


@dataclass(frozen=True)
class ProgressTick:
    elapsed_seconds: float     # source timestamp of the last encoded frame
    total_seconds: float       # trim start + effective trim length

    @property
    def fraction(self) -> float:
        if self.total_seconds <= 0:
            return 0.0
        return min(self.elapsed_seconds / self.total_seconds, 1.0)


@dataclass(frozen=True)
class VideoArtifact:
    local_path: Path
    storage_key: str | None = None


@dataclass(frozen=True)
class ThumbnailArtifact:
    local_path: Path
    width: int
    height: int
    average_brightness: float | None
    is_dark: bool
    storage_key: str | None = None


@dataclass(frozen=True)
class SnapRecord:
    id: str
    date: str
    media_length_sec: float
    video_url: str
    thumbnail_url: str
    is_thumbnail_dark: bool

    def to_document(self) -> dict[str, Any]:
        # Field names read by the mobile client and the cascade listeners.
        return {
            "date": self.date,
            "mediaLength": self.media_length_sec,
            "videoUrl": self.video_url,
            "thumbnailUrl": self.thumbnail_url,
            "isThumbnailDark": self.is_thumbnail_dark,
        }
