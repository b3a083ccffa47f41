"""
Pixel Comparator Module
Classifies every pixel of a same-sized image pair as matching or divergent.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from core.policy import ComparisonPolicy
from core.raster import RasterImage
from core.size_normalizer import NormalizedPair

logger = logging.getLogger(__name__)

# Luma weights used for brightness-only comparison.
BRIGHTNESS_WEIGHTS = np.array([0.3, 0.59, 0.11], dtype=np.float32)

NEIGHBOUR_OFFSETS = [
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1), (0, 1),
    (1, -1), (1, 0), (1, 1),
]

# More identical neighbours than this means the pixel sits on a flat area, not an edge.
MAX_IDENTICAL_NEIGHBOURS = 2


@dataclass(frozen=True)
class DiffBounds:
    top: int
    left: int
    bottom: int
    right: int

    def to_dict(self) -> Dict[str, int]:
        return {'top': self.top, 'left': self.left, 'bottom': self.bottom, 'right': self.right}


@dataclass(frozen=True)
class PixelComparison:
    divergent: np.ndarray
    divergent_pixels: int
    total_pixels: int
    ignored_antialiased: int = 0

    @property
    def raw_mismatch_percentage(self) -> float:
        if not self.total_pixels:
            return 0.0
        return self.divergent_pixels / self.total_pixels * 100.0

    @property
    def mismatch_percentage(self) -> float:
        # No region weighting is applied, so this equals the raw value.
        return self.raw_mismatch_percentage

    @property
    def diff_bounds(self) -> Optional[DiffBounds]:
        if not self.divergent_pixels:
            return None
        rows = np.flatnonzero(self.divergent.any(axis=1))
        cols = np.flatnonzero(self.divergent.any(axis=0))
        return DiffBounds(top=int(rows[0]), left=int(cols[0]), bottom=int(rows[-1]), right=int(cols[-1]))


def brightness(pixels: np.ndarray) -> np.ndarray:
    return pixels[..., :3].astype(np.float32) @ BRIGHTNESS_WEIGHTS


def pixels_similar(first: np.ndarray, second: np.ndarray, policy: ComparisonPolicy) -> np.ndarray:
    """Boolean mask of positions where two RGBA arrays match under the policy."""
    tolerance = policy.tolerance
    a = first.astype(np.int16)
    b = second.astype(np.int16)
    alpha_similar = np.abs(a[..., 3] - b[..., 3]) <= tolerance
    if policy.ignore_colors:
        return (np.abs(brightness(first) - brightness(second)) <= tolerance) & alpha_similar
    return np.all(np.abs(a[..., :3] - b[..., :3]) <= tolerance, axis=-1) & alpha_similar


def antialiased_mask(image: RasterImage) -> np.ndarray:
    """
    Detect pixels that look like edge-smoothing blends.

    A pixel is antialiased when at most MAX_IDENTICAL_NEIGHBOURS of its eight
    neighbours share its exact colour, at least one neighbour is strictly
    darker and one strictly brighter, and every channel of the pixel lies in
    the range spanned by its neighbours.
    """
    pixels = image.pixels
    height, width = pixels.shape[:2]
    lum = brightness(pixels)

    padded = np.pad(pixels, ((1, 1), (1, 1), (0, 0)), mode='constant')
    padded_lum = np.pad(lum, 1, mode='constant')
    valid = np.pad(np.ones((height, width), dtype=bool), 1, mode='constant')

    identical = np.zeros((height, width), dtype=np.uint8)
    has_darker = np.zeros((height, width), dtype=bool)
    has_brighter = np.zeros((height, width), dtype=bool)
    channel_min = np.full(pixels.shape, 255, dtype=np.uint8)
    channel_max = np.zeros(pixels.shape, dtype=np.uint8)

    for dy, dx in NEIGHBOUR_OFFSETS:
        rows = slice(1 + dy, 1 + dy + height)
        cols = slice(1 + dx, 1 + dx + width)
        neighbour = padded[rows, cols]
        neighbour_lum = padded_lum[rows, cols]
        present = valid[rows, cols]

        identical += present & np.all(neighbour == pixels, axis=-1)
        has_darker |= present & (neighbour_lum < lum)
        has_brighter |= present & (neighbour_lum > lum)
        present_4 = present[..., None]
        channel_min = np.where(present_4, np.minimum(channel_min, neighbour), channel_min)
        channel_max = np.where(present_4, np.maximum(channel_max, neighbour), channel_max)

    within_range = np.all((pixels >= channel_min) & (pixels <= channel_max), axis=-1)
    return (identical <= MAX_IDENTICAL_NEIGHBOURS) & has_darker & has_brighter & within_range


def compare_pixels(pair: NormalizedPair, policy: ComparisonPolicy) -> PixelComparison:
    reference = pair.reference.pixels
    candidate = pair.candidate.pixels
    divergent = ~pixels_similar(reference, candidate, policy)

    ignored = 0
    if policy.ignore_antialiasing and divergent.any():
        smoothed = antialiased_mask(pair.reference) | antialiased_mask(pair.candidate)
        excused = divergent & smoothed
        ignored = int(excused.sum())
        divergent &= ~excused

    if pair.coverage is not None:
        divergent |= ~pair.coverage

    divergent.setflags(write=False)
    total = divergent.size
    count = int(divergent.sum())
    logger.debug("%d of %d pixels divergent (%d ignored as antialiasing)", count, total, ignored)
    return PixelComparison(
        divergent=divergent,
        divergent_pixels=count,
        total_pixels=total,
        ignored_antialiased=ignored,
    )
