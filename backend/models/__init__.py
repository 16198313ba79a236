from .snap import (
    PipelineRun,
    PipelineState,
    ProgressTick,
    SnapRecord,
    ThumbnailArtifact,
    VideoArtifact,
)
from .upload import (
    MAX_TRIM_LENGTH_SEC,
    MIN_TRIM_LENGTH_SEC,
    MediaEditRequest,
    UploadSession,
    clamp_trim_length,
)

__all__ = [
    "UploadSession",
    "MediaEditRequest",
    "clamp_trim_length",
    "MIN_TRIM_LENGTH_SEC",
    "MAX_TRIM_LENGTH_SEC",
    "PipelineRun",
    "PipelineState",
    "ProgressTick",
    "VideoArtifact",
    "ThumbnailArtifact",
    "SnapRecord",
]
