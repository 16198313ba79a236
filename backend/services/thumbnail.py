"""Grab the frame at the trim start, size it for the feed and classify its brightness."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

import av
from PIL import Image

from models import MediaEditRequest, ThumbnailArtifact
from services.brightness import classify_image
from services.errors import TaskCancelled, ThumbnailError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThumbnailProfile:
    filename: str = "thumbnail.png"
    width: int = 512


SNAP_THUMBNAIL_PROFILE = ThumbnailProfile()


def extract_frame(source: Path, at_seconds: float, *, cancel: threading.Event | None = None) -> Image.Image:
    """Return the first decoded frame at or after ``at_seconds`` as an RGB image."""
    with av.open(str(source)) as container:
        if not container.streams.video:
            raise ThumbnailError(f"{source.name} has no video stream")
        stream = container.streams.video[0]
        if at_seconds > 0:
            container.seek(int(at_seconds / stream.time_base), stream=stream)
        for packet in container.demux(stream):
            if cancel is not None and cancel.is_set():
                raise TaskCancelled("thumbnail extraction cancelled")
            for frame in packet.decode():
                if frame.time is not None and frame.time < at_seconds:
                    continue
                return frame.to_image().convert("RGB")
    raise ThumbnailError(f"no frame at {at_seconds:.3f}s in {source.name}")


def render_thumbnail(
    source: Path,
    workspace: Path,
    request: MediaEditRequest,
    *,
    profile: ThumbnailProfile = SNAP_THUMBNAIL_PROFILE,
    cancel: threading.Event | None = None,
) -> ThumbnailArtifact:
    """Write ``thumbnail.png`` into the workspace; runs in a worker thread."""
    destination = workspace / profile.filename
    try:
        image = extract_frame(source, request.trim_start_sec, cancel=cancel)
        height = max(1, round(profile.width * image.height / image.width))
        image.resize((profile.width, height), Image.Resampling.LANCZOS).save(destination, format="PNG")
    except (ThumbnailError, TaskCancelled):
        raise
    except (av.error.FFmpegError, OSError, ValueError) as exc:
        raise ThumbnailError(f"thumbnail extraction failed: {exc}") from exc
    logger.info("[thumbnail] Thumbnail generated at %s", destination)

    verdict = classify_image(destination)
    return ThumbnailArtifact(
        local_path=destination,
        width=verdict.width,
        height=verdict.height,
        average_brightness=verdict.average_brightness,
        is_dark=verdict.is_dark,
    )
