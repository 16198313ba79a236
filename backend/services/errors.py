"""
Pipeline error taxonomy.

Every internal failure carries a ``caller_code`` from the small set the HTTP
layer exposes: ``unauthenticated``, ``invalid-argument`` or ``internal``.
The distinction between e.g. EncodeError and PublishError only reaches logs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models import SnapRecord

UNAUTHENTICATED = "unauthenticated"
INVALID_ARGUMENT = "invalid-argument"
INTERNAL = "internal"


class PipelineError(Exception):
    caller_code = INTERNAL


class Unauthenticated(PipelineError):
    caller_code = UNAUTHENTICATED


class InvalidArgument(PipelineError):
    caller_code = INVALID_ARGUMENT


class NotFound(PipelineError):
    caller_code = INVALID_ARGUMENT


class TransferError(PipelineError):
    pass


class EncodeError(PipelineError):
    pass


class ThumbnailError(PipelineError):
    pass


class PublishError(PipelineError):
    pass


class Timeout(PipelineError):
    pass


class TaskCancelled(PipelineError):
    """Raised inside a subtask that stopped because its sibling failed."""


class CleanupError(PipelineError):
    def __init__(self, message: str, *, snap: SnapRecord | None = None) -> None:
        super().__init__(message)
        self.snap = snap


CALLER_MESSAGES = {
    UNAUTHENTICATED: "Unauthenticated.",
    INVALID_ARGUMENT: "Invalid snap request.",
    INTERNAL: "Failed to process snap on server.",
}


def caller_message(error: PipelineError) -> str:
    if isinstance(error, CleanupError):
        return "Cleanup failed."
    return CALLER_MESSAGES[error.caller_code]
