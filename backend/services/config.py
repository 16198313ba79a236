"""Runtime settings read from the environment."""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

DEFAULT_BUCKET = "snapreeal.appspot.com"
DEFAULT_MEDIA_ROOT = "diary-media"


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, "").strip() or default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    bucket_name: str = DEFAULT_BUCKET
    media_root: str = DEFAULT_MEDIA_ROOT
    workspace_root: Path = Path(tempfile.gettempdir())
    run_timeout_seconds: float = 120.0
    upload_token_ttl_seconds: float = 3600.0
    signed_url_expiration_seconds: float = 900.0
    orphan_grace_seconds: float = 3600.0
    auth_jwt_secret: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            bucket_name=_env_str("GCS_BUCKET", DEFAULT_BUCKET),
            media_root=_env_str("MEDIA_ROOT", DEFAULT_MEDIA_ROOT).strip("/"),
            workspace_root=Path(_env_str("WORKSPACE_ROOT", tempfile.gettempdir())),
            run_timeout_seconds=_env_float("SNAP_RUN_TIMEOUT_SECONDS", 120.0),
            upload_token_ttl_seconds=_env_float("UPLOAD_TOKEN_TTL_SECONDS", 3600.0),
            signed_url_expiration_seconds=_env_float("SIGNED_URL_EXPIRATION_SECONDS", 900.0),
            orphan_grace_seconds=_env_float("ORPHAN_GRACE_SECONDS", 3600.0),
            auth_jwt_secret=os.environ.get("AUTH_JWT_SECRET", "").strip(),
        )


def get_settings() -> Settings:
    return Settings.from_env()
