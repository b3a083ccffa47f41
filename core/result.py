"""
Comparison Result Module
Outcome of running the comparison pipeline on one image pair.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from core.pixel_comparator import DiffBounds
from core.raster import RasterImage
from core.size_normalizer import DimensionDelta


@dataclass(frozen=True)
class ComparisonResult:
    mismatch_percentage: float
    raw_mismatch_percentage: float
    is_same_dimensions: bool
    dimension_delta: Optional[DimensionDelta]
    diff_image: RasterImage
    computed_at: datetime
    divergent_pixels: int = 0
    total_pixels: int = 0
    shifted_pixels: int = 0
    diff_bounds: Optional[DiffBounds] = None
    analysis_time_ms: float = 0.0
    perceptual_distance: Optional[int] = None
    reference: Optional[RasterImage] = None
    candidate: Optional[RasterImage] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly summary; images are left out."""
        return {
            'misMatchPercentage': self.mismatch_percentage,
            'rawMisMatchPercentage': self.raw_mismatch_percentage,
            'isSameDimensions': self.is_same_dimensions,
            'dimensionDifference': self.dimension_delta.to_dict() if self.dimension_delta else None,
            'diffBounds': self.diff_bounds.to_dict() if self.diff_bounds else None,
            'divergentPixels': self.divergent_pixels,
            'totalPixels': self.total_pixels,
            'shiftedPixels': self.shifted_pixels,
            'perceptualDistance': self.perceptual_distance,
            'analysisTime': round(self.analysis_time_ms, 3),
            'computedAt': self.computed_at.isoformat(),
            'diffSize': {'width': self.diff_image.width, 'height': self.diff_image.height},
        }
