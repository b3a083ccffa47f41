"""
Report Module
Pure transformation from a ComparisonResult to the user-facing ComparisonReport.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from core.result import ComparisonResult
from core.size_normalizer import DimensionDelta


@dataclass(frozen=True)
class ImageRefs:
    reference: Optional[str] = None
    candidate: Optional[str] = None
    diff: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {'reference': self.reference, 'candidate': self.candidate, 'diff': self.diff}


@dataclass(frozen=True)
class ComparisonReport:
    match_score: float
    mismatch_percentage: float
    computed_at: datetime
    image_refs: ImageRefs = field(default_factory=ImageRefs)
    is_same_dimensions: bool = True
    dimension_delta: Optional[DimensionDelta] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'matchScore': self.match_score,
            'mismatchPercentage': self.mismatch_percentage,
            'computedAt': self.computed_at.isoformat(),
            'imageRefs': self.image_refs.to_dict(),
            'isSameDimensions': self.is_same_dimensions,
            'dimensionDelta': self.dimension_delta.to_dict() if self.dimension_delta else None,
        }


def round_percentage(value: float) -> float:
    """Two decimal places, rounding half away from zero."""
    return float(Decimal(repr(float(value))).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def build_report(result: ComparisonResult, image_refs: Optional[ImageRefs] = None) -> ComparisonReport:
    """
    Derive the report for a comparison result.

    The timestamp is the one recorded when the comparison ran, so building a
    report twice from the same result yields identical reports.
    """
    mismatch = round_percentage(clamp(result.mismatch_percentage))
    match_score = round_percentage(clamp(100.0 - mismatch))
    return ComparisonReport(
        match_score=match_score,
        mismatch_percentage=mismatch,
        computed_at=result.computed_at,
        image_refs=image_refs or ImageRefs(),
        is_same_dimensions=result.is_same_dimensions,
        dimension_delta=result.dimension_delta,
    )
