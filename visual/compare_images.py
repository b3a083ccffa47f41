"""
Image Comparison Module
Compares a reference image with a candidate screenshot and writes the diff artifacts.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Tuple

from core.comparison import analyse, perceptual_distance
from core.policy import ComparisonPolicy
from core.raster import ImageSource, load_raster
from core.report import ComparisonReport, ImageRefs, build_report
from core.result import ComparisonResult
from utils.file_utils import CANDIDATE_FILENAME, DIFF_FILENAME, REFERENCE_FILENAME, ensure_directory

logger = logging.getLogger(__name__)


class ImageComparator:
    def __init__(self, policy: Optional[ComparisonPolicy] = None):
        self.policy = policy or ComparisonPolicy()

    def perceptual_hash(self, image1: ImageSource, image2: ImageSource) -> int:
        """Hamming distance between the perceptual hashes of two images."""
        return perceptual_distance(load_raster(image1), load_raster(image2))

    def generate_diff_image(self, reference: ImageSource, candidate: ImageSource,
                            output_path: Path) -> ComparisonResult:
        """Generate the diff image for a pair and save it to `output_path`."""
        result = analyse(reference, candidate, self.policy)
        result.diff_image.save(output_path)
        return result

    def compare_files(self, reference: ImageSource, candidate: ImageSource, output_dir: Path,
                      url_prefix: Optional[str] = None,
                      result: Optional[ComparisonResult] = None,
                      cancel: Optional[threading.Event] = None) -> Tuple[ComparisonResult, ComparisonReport]:
        """
        Compare two images and save the normalized inputs and the diff image.

        Args:
            reference: Reference (design) image
            candidate: Candidate (rendered page) image
            output_dir: Directory receiving reference.png, candidate.png and diff.png
            url_prefix: When given, image refs are `url_prefix/<file>` instead of file paths
            result: Reuse an already computed result instead of comparing again

        Returns:
            (ComparisonResult, ComparisonReport)
        """
        output_dir = Path(output_dir)
        ensure_directory(output_dir)
        if result is None:
            result = analyse(reference, candidate, self.policy, cancel)

        paths = {
            'reference': output_dir / REFERENCE_FILENAME,
            'candidate': output_dir / CANDIDATE_FILENAME,
            'diff': output_dir / DIFF_FILENAME,
        }
        result.reference.save(paths['reference'])
        result.candidate.save(paths['candidate'])
        result.diff_image.save(paths['diff'])
        logger.info("Diff image saved to: %s", paths['diff'])

        if url_prefix is not None:
            prefix = url_prefix.rstrip('/')
            refs = ImageRefs(**{key: f"{prefix}/{path.name}" for key, path in paths.items()})
        else:
            refs = ImageRefs(**{key: str(path) for key, path in paths.items()})
        return result, build_report(result, refs)
