from datetime import datetime, timedelta, timezone

import pytest

from models import MediaEditRequest, ProgressTick, SnapRecord, UploadSession, clamp_trim_length


@pytest.mark.parametrize(
    ("requested", "expected"),
    [(-3, 1), (0, 1), (0.5, 1), (1, 1), (2.5, 2.5), (5, 5), (5.01, 5), (10, 5), (600, 5)],
)
def test_clamp_trim_length_stays_in_window(requested: float, expected: float) -> None:
    clamped = clamp_trim_length(requested)
    assert 1 <= clamped <= 5
    assert clamped == expected


def test_media_edit_request_derives_seconds() -> None:
    request = MediaEditRequest(source_filename="clip.mp4", trim_start_ms=2000, trim_length_sec=10)
    assert request.trim_start_sec == 2.0
    assert request.effective_trim_length_sec == 5


def test_upload_session_expiry_uses_ttl_past_stamp() -> None:
    stamped = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    session = UploadSession(token="tok", owner="user-1", expiry=stamped)
    assert session.is_expired(3600, now=stamped + timedelta(minutes=59)) is False
    assert session.is_expired(3600, now=stamped + timedelta(minutes=61)) is True


def test_progress_tick_fraction_is_capped() -> None:
    assert ProgressTick(elapsed_seconds=3.0, total_seconds=6.0).fraction == 0.5
    assert ProgressTick(elapsed_seconds=7.0, total_seconds=6.0).fraction == 1.0
    assert ProgressTick(elapsed_seconds=1.0, total_seconds=0.0).fraction == 0.0


def test_snap_record_document_uses_client_field_names() -> None:
    record = SnapRecord(
        id="abc",
        date="2026-10-18",
        media_length_sec=5,
        video_url="https://v",
        thumbnail_url="https://t",
        is_thumbnail_dark=True,
    )
    assert record.to_document() == {
        "date": "2026-10-18",
        "mediaLength": 5,
        "videoUrl": "https://v",
        "thumbnailUrl": "https://t",
        "isThumbnailDark": True,
    }
