"""
Comparison Pipeline Module
Size normalisation -> pixel comparison -> diff rendering for one image pair.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional

import imagehash

from core.diff_renderer import render_diff
from core.errors import ComparisonCancelled, ComparisonError, InternalError
from core.pixel_comparator import compare_pixels
from core.policy import ComparisonPolicy
from core.raster import ImageSource, RasterImage, load_raster
from core.report import ComparisonReport, ImageRefs, build_report
from core.result import ComparisonResult
from core.size_normalizer import normalize_sizes

logger = logging.getLogger(__name__)


def _check_cancelled(cancel: Optional[threading.Event], stage: str) -> None:
    if cancel is not None and cancel.is_set():
        raise ComparisonCancelled(f"Comparison cancelled before {stage}")


def perceptual_distance(reference: RasterImage, candidate: RasterImage) -> int:
    """Hamming distance between the perceptual hashes of the two images."""
    return int(imagehash.phash(reference.to_pil()) - imagehash.phash(candidate.to_pil()))


def analyse(reference: ImageSource, candidate: ImageSource,
            policy: Optional[ComparisonPolicy] = None,
            cancel: Optional[threading.Event] = None) -> ComparisonResult:
    """
    Run the full pipeline and return the raw ComparisonResult.

    Raises DecodeError for undecodable input, DimensionMismatch when the
    policy forbids unequal sizes, ComparisonCancelled when `cancel` is set
    and InternalError for anything unexpected.
    """
    policy = policy or ComparisonPolicy()
    started = time.perf_counter()
    try:
        reference = load_raster(reference)
        candidate = load_raster(candidate)
        logger.info("Comparing reference %sx%s with candidate %sx%s",
                    reference.width, reference.height, candidate.width, candidate.height)

        _check_cancelled(cancel, 'size normalisation')
        pair = normalize_sizes(reference, candidate, policy)

        _check_cancelled(cancel, 'pixel comparison')
        comparison = compare_pixels(pair, policy)

        _check_cancelled(cancel, 'diff rendering')
        rendered = render_diff(pair, comparison, policy, cancel)

        distance = perceptual_distance(pair.reference, pair.candidate)
    except ComparisonError:
        raise
    except MemoryError as e:
        logger.exception("Out of memory comparing images")
        raise InternalError("Ran out of memory while comparing images") from e
    except Exception as e:
        logger.exception("Unexpected failure while comparing images")
        raise InternalError(f"Image comparison failed: {e}") from e

    elapsed_ms = (time.perf_counter() - started) * 1000.0
    result = ComparisonResult(
        mismatch_percentage=comparison.mismatch_percentage,
        raw_mismatch_percentage=comparison.raw_mismatch_percentage,
        is_same_dimensions=pair.is_same_dimensions,
        dimension_delta=pair.dimension_delta,
        diff_image=rendered.image,
        computed_at=datetime.now(timezone.utc),
        divergent_pixels=comparison.divergent_pixels,
        total_pixels=comparison.total_pixels,
        shifted_pixels=rendered.shifted_pixels,
        diff_bounds=comparison.diff_bounds,
        analysis_time_ms=elapsed_ms,
        perceptual_distance=distance,
        reference=pair.reference,
        candidate=pair.candidate,
    )
    logger.info("Mismatch percentage: %.2f%% (same dimensions: %s)",
                result.mismatch_percentage, result.is_same_dimensions)
    if result.dimension_delta:
        logger.info("Dimension difference: %s", result.dimension_delta.to_dict())
    return result


def compare(reference: ImageSource, candidate: ImageSource,
            policy: Optional[ComparisonPolicy] = None,
            image_refs: Optional[ImageRefs] = None,
            cancel: Optional[threading.Event] = None) -> ComparisonReport:
    """Compare two images and return the formatted report."""
    return build_report(analyse(reference, candidate, policy, cancel), image_refs)
