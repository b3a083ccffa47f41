"""
Size Normalizer Module
Brings a reference/candidate pair to common dimensions before pixel comparison.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from core.errors import DimensionMismatch
from core.policy import ComparisonPolicy
from core.raster import RasterImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DimensionDelta:
    width: int
    height: int

    def to_dict(self) -> Dict[str, int]:
        return {'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class NormalizedPair:
    reference: RasterImage
    candidate: RasterImage
    is_same_dimensions: bool
    dimension_delta: Optional[DimensionDelta] = None
    # False where a pixel exists in only one of the original images (padding).
    coverage: Optional[np.ndarray] = None

    @property
    def size(self) -> Tuple[int, int]:
        return self.reference.size


def target_size(reference: RasterImage, candidate: RasterImage) -> Tuple[int, int]:
    """The larger extent on each axis; smaller images are scaled up, never down."""
    return max(reference.width, candidate.width), max(reference.height, candidate.height)


def resample(image: RasterImage, size: Tuple[int, int]) -> RasterImage:
    """Bilinear resample to (width, height)."""
    if image.size == size:
        return image
    resized = cv2.resize(np.ascontiguousarray(image.pixels), size, interpolation=cv2.INTER_LINEAR)
    return RasterImage(resized)


def pad(image: RasterImage, size: Tuple[int, int]) -> RasterImage:
    """Anchor at the top-left corner and fill the remainder with transparent pixels."""
    if image.size == size:
        return image
    width, height = size
    padded = np.zeros((height, width, 4), dtype=np.uint8)
    padded[:image.height, :image.width] = image.pixels
    return RasterImage(padded)


def normalize_sizes(reference: RasterImage, candidate: RasterImage,
                    policy: ComparisonPolicy) -> NormalizedPair:
    if reference.size == candidate.size:
        return NormalizedPair(reference, candidate, is_same_dimensions=True)

    delta = DimensionDelta(
        width=abs(reference.width - candidate.width),
        height=abs(reference.height - candidate.height),
    )
    size = target_size(reference, candidate)

    if policy.scale_to_same_size:
        logger.info("Resampling %s and %s to %s", reference.size, candidate.size, size)
        return NormalizedPair(
            resample(reference, size),
            resample(candidate, size),
            is_same_dimensions=False,
            dimension_delta=delta,
        )

    if policy.pad_on_mismatch:
        logger.info("Padding %s and %s to %s; non-overlapping pixels count as divergent",
                    reference.size, candidate.size, size)
        width, height = size
        coverage = np.zeros((height, width), dtype=bool)
        overlap_w = min(reference.width, candidate.width)
        overlap_h = min(reference.height, candidate.height)
        coverage[:overlap_h, :overlap_w] = True
        coverage.setflags(write=False)
        return NormalizedPair(
            pad(reference, size),
            pad(candidate, size),
            is_same_dimensions=False,
            dimension_delta=delta,
            coverage=coverage,
        )

    raise DimensionMismatch(
        f"Reference is {reference.width}x{reference.height} but candidate is "
        f"{candidate.width}x{candidate.height}; enable scale_to_same_size or pad_on_mismatch",
        reference_size=list(reference.size),
        candidate_size=list(candidate.size),
    )
