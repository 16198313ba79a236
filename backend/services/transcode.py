"""Trim, crop/resize and re-encode the source clip to the WebM snap profile."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import Callable

import av
import numpy as np
from av import AudioFrame, VideoFrame

from models import MediaEditRequest, ProgressTick, VideoArtifact
from services.errors import EncodeError, TaskCancelled

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressTick], None]

DEFAULT_FPS = 30
# libvpx expects yuv420p
OUTPUT_PIX_FMT = "yuv420p"
AUDIO_SAMPLE_RATE = 48000


@dataclass(frozen=True)
class VideoProfile:
    filename: str = "export.webm"
    container_format: str = "webm"
    width: int = 1080
    height: int = 1920
    video_codec: str = "libvpx"
    audio_codec: str = "libopus"
    video_bit_rate: int = 4_000_000
    # Tuned for encode speed over compression efficiency.
    codec_options: dict[str, str] = field(
        default_factory=lambda: {"cpu-used": "5", "deadline": "realtime"}
    )

    @property
    def aspect(self) -> Fraction:
        return Fraction(self.width, self.height)


SNAP_VIDEO_PROFILE = VideoProfile()


def cover_crop_box(src_width: int, src_height: int, aspect: Fraction) -> tuple[int, int, int, int]:
    """
    Centered (x, y, width, height) crop of the source with the target aspect.

    Width and height are kept even for yuv420p.
    """
    if Fraction(src_width, src_height) > aspect:
        height = src_height
        width = min(src_width, int(src_height * aspect))
    else:
        width = src_width
        height = min(src_height, int(src_width / aspect))
    width -= width % 2
    height -= height % 2
    width = max(width, 2)
    height = max(height, 2)
    return (src_width - width) // 2, (src_height - height) // 2, width, height


def _fit_frame(frame: VideoFrame, profile: VideoProfile) -> VideoFrame:
    x, y, w, h = cover_crop_box(frame.width, frame.height, profile.aspect)
    if (w, h) != (frame.width, frame.height):
        rgb = frame.to_ndarray(format="rgb24")
        frame = VideoFrame.from_ndarray(np.ascontiguousarray(rgb[y : y + h, x : x + w]), format="rgb24")
    return frame.reformat(width=profile.width, height=profile.height, format=OUTPUT_PIX_FMT)


class _TrimEncoder:
    """Encoding state for one output file; fed decoded frames in source time."""

    def __init__(
        self,
        output: av.container.OutputContainer,
        profile: VideoProfile,
        *,
        fps: int,
        start: float,
        end: float,
        with_audio: bool,
    ) -> None:
        self._output = output
        self._profile = profile
        self._fps = fps
        self._start = start
        self._end = end
        self._last_pts = -1
        self.frames_encoded = 0

        self.video = output.add_stream(profile.video_codec, rate=fps, options=dict(profile.codec_options))
        self.video.width = profile.width
        self.video.height = profile.height
        self.video.pix_fmt = OUTPUT_PIX_FMT
        self.video.bit_rate = profile.video_bit_rate
        self.video.codec_context.time_base = Fraction(1, fps)

        self.audio = None
        self._resampler = None
        if with_audio:
            self.audio = output.add_stream(profile.audio_codec, rate=AUDIO_SAMPLE_RATE)
            self._resampler = av.AudioResampler(format="s16", layout="stereo", rate=AUDIO_SAMPLE_RATE)

    def add_video(self, frame: VideoFrame, timestamp: float) -> bool:
        """Encode one frame if it lies in the trim window. Returns False once past the end."""
        if timestamp >= self._end:
            return False
        if timestamp < self._start:
            return True
        pts = int(round((timestamp - self._start) * self._fps))
        if pts <= self._last_pts:
            return True
        out = _fit_frame(frame, self._profile)
        out.pts = pts
        out.time_base = Fraction(1, self._fps)
        for packet in self.video.encode(out):
            self._output.mux(packet)
        self._last_pts = pts
        self.frames_encoded += 1
        return True

    def add_audio(self, frame: AudioFrame) -> bool:
        if self.audio is None or self._resampler is None:
            return False
        timestamp = frame.time
        if timestamp is None:
            return True
        if timestamp >= self._end:
            return False
        duration = frame.samples / frame.sample_rate if frame.sample_rate else 0.0
        if timestamp + duration <= self._start:
            return True
        for resampled in self._resampler.resample(frame):
            resampled.pts = None
            for packet in self.audio.encode(resampled):
                self._output.mux(packet)
        return True

    def flush(self) -> None:
        for packet in self.video.encode():
            self._output.mux(packet)
        if self.audio is not None:
            for packet in self.audio.encode():
                self._output.mux(packet)


def transcode_video(
    source: Path,
    workspace: Path,
    request: MediaEditRequest,
    *,
    profile: VideoProfile = SNAP_VIDEO_PROFILE,
    cancel: threading.Event | None = None,
    on_progress: ProgressCallback | None = None,
) -> VideoArtifact:
    """
    Produce the snap rendition of ``[start, start + effective length)``.

    Runs in a worker thread. Checks ``cancel`` between frames and raises
    TaskCancelled when it is set; every decoder/encoder failure becomes an
    EncodeError carrying the underlying message.
    """
    start = request.trim_start_sec
    end = start + request.effective_trim_length_sec
    destination = workspace / profile.filename
    logger.info("[transcode] Encoding %s [%.3fs, %.3fs) -> %s", source.name, start, end, destination)

    try:
        with av.open(str(source)) as container:
            if not container.streams.video:
                raise EncodeError(f"{source.name} has no video stream")
            in_video = container.streams.video[0]
            in_video.thread_type = "AUTO"
            in_audio = container.streams.audio[0] if container.streams.audio else None
            fps = int(round(in_video.average_rate or DEFAULT_FPS)) or DEFAULT_FPS

            if start > 0:
                container.seek(int(start / in_video.time_base), stream=in_video)

            with av.open(str(destination), mode="w", format=profile.container_format) as output:
                encoder = _TrimEncoder(
                    output,
                    profile,
                    fps=fps,
                    start=start,
                    end=end,
                    with_audio=in_audio is not None,
                )
                video_open = True
                audio_open = in_audio is not None
                decoded = 0
                streams = [s for s in (in_video, in_audio) if s is not None]
                for packet in container.demux(*streams):
                    if cancel is not None and cancel.is_set():
                        raise TaskCancelled("video transcode cancelled")
                    if packet.stream is in_video and video_open:
                        for frame in packet.decode():
                            timestamp = frame.time if frame.time is not None else start + decoded / fps
                            decoded += 1
                            video_open = encoder.add_video(frame, timestamp)
                            if not video_open:
                                break
                            if on_progress is not None and timestamp >= start:
                                on_progress(ProgressTick(elapsed_seconds=timestamp, total_seconds=end))
                    elif packet.stream is in_audio and audio_open:
                        for frame in packet.decode():
                            audio_open = encoder.add_audio(frame)
                            if not audio_open:
                                break
                    if not video_open and not audio_open:
                        break
                encoder.flush()
    except (EncodeError, TaskCancelled):
        raise
    except (av.error.FFmpegError, OSError, ValueError) as exc:
        raise EncodeError(f"video encoding failed: {exc}") from exc

    if encoder.frames_encoded == 0:
        raise EncodeError(f"no video frames between {start:.3f}s and {end:.3f}s in {source.name}")
    if on_progress is not None:
        on_progress(ProgressTick(elapsed_seconds=end, total_seconds=end))
    logger.info("[transcode] Video processing finished (%d frames). Path: %s", encoder.frames_encoded, destination)
    return VideoArtifact(local_path=destination)
