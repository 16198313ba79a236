"""Light/dark classification of thumbnails by average luminance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

DARK_THRESHOLD = 80
MAX_SAMPLE_SIZE = 100


@dataclass(frozen=True)
class BrightnessVerdict:
    width: int
    height: int
    average_brightness: float | None   # None when the image could not be read
    is_dark: bool


def average_luminance(samples: np.ndarray) -> float:
    """Mean over pixels of the unweighted R/G/B mean. ``samples`` is (H, W, 3+)."""
    rgb = np.asarray(samples, dtype=np.float64)[..., :3]
    return float(rgb.mean(axis=-1).mean())


def is_dark(average_brightness: float, threshold: float = DARK_THRESHOLD) -> bool:
    return average_brightness < threshold


def classify_image(path: Path, *, threshold: float = DARK_THRESHOLD) -> BrightnessVerdict:
    """
    Classify the image at ``path`` as dark or light.

    Unreadable images (or ones without usable dimensions) fall back to dark
    so the client picks the variant that stays legible on a dark thumbnail.
    """
    try:
        with Image.open(path) as image:
            width, height = image.size
            if not width or not height:
                raise UnidentifiedImageError(f"{path} has no dimensions")
            sample_size = min(width, height, MAX_SAMPLE_SIZE)
            sampled = image.convert("RGB").resize((sample_size, sample_size))
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("[brightness] Couldn't read thumbnail metadata, falling back to dark: %s", exc)
        return BrightnessVerdict(width=0, height=0, average_brightness=None, is_dark=True)

    average = average_luminance(np.asarray(sampled))
    verdict = BrightnessVerdict(
        width=width,
        height=height,
        average_brightness=average,
        is_dark=is_dark(average, threshold),
    )
    logger.info("[brightness] Thumbnail brightness %.1f, is dark? %s", average, verdict.is_dark)
    return verdict
