from pathlib import Path
from unittest.mock import patch

import pytest

from services.config import DEFAULT_BUCKET, DEFAULT_MEDIA_ROOT, get_settings


def test_settings_defaults() -> None:
    with patch.dict("os.environ", {"GCS_BUCKET": "", "MEDIA_ROOT": "", "SNAP_RUN_TIMEOUT_SECONDS": ""}):
        settings = get_settings()
    assert settings.bucket_name == DEFAULT_BUCKET
    assert settings.media_root == DEFAULT_MEDIA_ROOT
    assert settings.run_timeout_seconds == 120.0


def test_settings_from_env_strips_whitespace() -> None:
    env = {
        "GCS_BUCKET": "  my-bucket  ",
        "MEDIA_ROOT": "/media/",
        "WORKSPACE_ROOT": "/var/tmp/snaps",
        "SNAP_RUN_TIMEOUT_SECONDS": "45",
        "AUTH_JWT_SECRET": " s3cret ",
    }
    with patch.dict("os.environ", env):
        settings = get_settings()
    assert settings.bucket_name == "my-bucket"
    assert settings.media_root == "media"
    assert settings.workspace_root == Path("/var/tmp/snaps")
    assert settings.run_timeout_seconds == 45.0
    assert settings.auth_jwt_secret == "s3cret"


def test_settings_rejects_non_numeric_timeout() -> None:
    with patch.dict("os.environ", {"SNAP_RUN_TIMEOUT_SECONDS": "soon"}):
        with pytest.raises(ValueError, match="SNAP_RUN_TIMEOUT_SECONDS"):
            get_settings()
