"""Thumbnail light/dark classification."""

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from services.brightness import DARK_THRESHOLD, average_luminance, classify_image


@pytest.mark.parametrize("value", [0, 40, 79, 80, 81, 128, 255])
def test_uniform_thumbnail_is_dark_below_threshold(tmp_path: Path, value: int) -> None:
    path = tmp_path / "thumb.png"
    Image.new("RGB", (512, 288), (value, value, value)).save(path)

    verdict = classify_image(path)

    assert verdict.average_brightness == pytest.approx(value)
    assert verdict.is_dark is (value < DARK_THRESHOLD)
    assert (verdict.width, verdict.height) == (512, 288)


def test_luminance_is_unweighted_channel_mean() -> None:
    samples = np.array([[[30, 60, 90], [0, 0, 0]]], dtype=np.uint8)
    assert average_luminance(samples) == pytest.approx((60 + 0) / 2)


def test_alpha_channel_is_ignored() -> None:
    samples = np.array([[[90, 90, 90, 0]]], dtype=np.uint8)
    assert average_luminance(samples) == pytest.approx(90)


def test_small_image_is_sampled_at_its_own_size(tmp_path: Path) -> None:
    path = tmp_path / "tiny.png"
    image = Image.new("RGB", (4, 2), (200, 200, 200))
    image.putpixel((0, 0), (0, 0, 0))
    image.save(path)

    verdict = classify_image(path)

    assert verdict.is_dark is False
    assert 0 < verdict.average_brightness < 200


def test_unreadable_thumbnail_falls_back_to_dark(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "broken.png"
    path.write_bytes(b"definitely not a png")

    verdict = classify_image(path)

    assert verdict.is_dark is True
    assert verdict.average_brightness is None
    assert any("falling back to dark" in r.getMessage() for r in caplog.records)


def test_missing_thumbnail_falls_back_to_dark(tmp_path: Path) -> None:
    assert classify_image(tmp_path / "nope.png").is_dark is True
