from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

MIN_TRIM_LENGTH_SEC = 1
MAX_TRIM_LENGTH_SEC = 5


def clamp_trim_length(length_sec: float) -> float:
    """Bound a requested trim length to the [1, 5] second window."""
    return max(MIN_TRIM_LENGTH_SEC, min(length_sec, MAX_TRIM_LENGTH_SEC))


@dataclass(frozen=True)
class UploadSession:
    token: str
    owner: str
    expiry: datetime           # "validUntil" stamped by the token issuer

    def is_expired(self, ttl_seconds: float, *, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > self.expiry + timedelta(seconds=ttl_seconds)


@dataclass(frozen=True)
class MediaEditRequest:
    source_filename: str
    trim_start_ms: int
    trim_length_sec: float

    @property
    def trim_start_sec(self) -> float:
        return self.trim_start_ms / 1000

    @property
    def effective_trim_length_sec(self) -> float:
        return clamp_trim_length(self.trim_length_sec)
