"""
Diff Image Renderer Module
Paints divergent pixels over the candidate image to visualise where and how the pair differs.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from core.errors import ComparisonCancelled
from core.pixel_comparator import PixelComparison, pixels_similar
from core.policy import ComparisonPolicy, DiffMode
from core.raster import RasterImage
from core.size_normalizer import NormalizedPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedDiff:
    image: RasterImage
    shifted_pixels: int = 0


def search_offsets(radius: int) -> List[Tuple[int, int]]:
    """All (dy, dx) offsets within the radius except (0, 0), nearest first."""
    offsets = [
        (dy, dx)
        for dy in range(-radius, radius + 1)
        for dx in range(-radius, radius + 1)
        if (dy, dx) != (0, 0)
    ]
    return sorted(offsets, key=lambda o: (o[0] ** 2 + o[1] ** 2, o[0], o[1]))


def direction_color(dy: int, dx: int) -> np.ndarray:
    """
    RGB tint for content that moved by (dx, dy) between reference and candidate.

    The hue encodes the angle of the shift; OpenCV stores hue as 0-179.
    """
    angle = np.degrees(np.arctan2(dy, dx)) % 360.0
    hsv = np.array([[[int(angle / 2) % 180, 255, 255]]], dtype=np.uint8)
    return cv2.cvtColor(hsv, cv2.COLOR_HSV2RGB)[0, 0].astype(np.float32)


def find_shifts(pair: NormalizedPair, divergent: np.ndarray, policy: ComparisonPolicy,
                cancel: Optional[threading.Event] = None) -> Dict[Tuple[int, int], np.ndarray]:
    """
    For each divergent candidate pixel, look for the nearest reference pixel within
    the search radius that matches it. Returns {(dy, dx): mask} where (dy, dx) is the
    displacement from the reference position to the candidate position.
    """
    reference = pair.reference.pixels
    candidate = pair.candidate.pixels
    height, width = divergent.shape
    radius = policy.movement_search_radius
    unresolved = divergent.copy()
    shifts = {}

    for dy, dx in search_offsets(radius):
        if cancel is not None and cancel.is_set():
            raise ComparisonCancelled("Comparison cancelled during movement search")
        if not unresolved.any():
            break
        # Candidate pixel (y, x) is compared with reference pixel (y - dy, x - dx).
        src_y0, src_y1 = max(0, -dy), min(height, height - dy)
        src_x0, src_x1 = max(0, -dx), min(width, width - dx)
        if src_y0 >= src_y1 or src_x0 >= src_x1:
            continue
        dst = (slice(src_y0 + dy, src_y1 + dy), slice(src_x0 + dx, src_x1 + dx))
        src = (slice(src_y0, src_y1), slice(src_x0, src_x1))

        matched = np.zeros_like(unresolved)
        matched[dst] = unresolved[dst] & pixels_similar(reference[src], candidate[dst], policy)
        if matched.any():
            shifts[(dy, dx)] = matched
            unresolved &= ~matched
    return shifts


def _blend(base: np.ndarray, color: np.ndarray, alpha: float) -> np.ndarray:
    return base * (1.0 - alpha) + color * alpha


def render_diff(pair: NormalizedPair, comparison: PixelComparison, policy: ComparisonPolicy,
                cancel: Optional[threading.Event] = None) -> RenderedDiff:
    base = pair.candidate.pixels
    out = base.astype(np.float32)
    out[..., 3] = 255.0
    mask = comparison.divergent
    color = np.array(policy.error_highlight_color, dtype=np.float32)
    alpha = policy.error_highlight_transparency
    shifted = 0

    if comparison.divergent_pixels:
        if policy.diff_mode is DiffMode.FLAT:
            out[mask, :3] = color
        elif policy.diff_mode is DiffMode.OVERLAY:
            out[mask, :3] = _blend(out[mask, :3], color, alpha)
        else:
            remaining = mask.copy()
            for (dy, dx), moved in find_shifts(pair, mask, policy, cancel).items():
                out[moved, :3] = _blend(out[moved, :3], direction_color(dy, dx), alpha)
                remaining &= ~moved
                shifted += int(moved.sum())
            out[remaining, :3] = _blend(out[remaining, :3], color, alpha)
            logger.debug("%d of %d divergent pixels matched a nearby shift",
                         shifted, comparison.divergent_pixels)

    rendered = np.clip(np.rint(out), 0, 255).astype(np.uint8)
    return RenderedDiff(image=RasterImage(rendered), shifted_pixels=shifted)
