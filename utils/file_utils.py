"""
File Utilities Module
Artifact directories and path handling for comparison runs.
"""

import logging
import re
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional, Tuple

# Extensions accepted for uploaded images
IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.gif', '.bmp', '.webp', '.tif', '.tiff'}

# Artifact file names written for every comparison run
REFERENCE_FILENAME = 'reference.png'
CANDIDATE_FILENAME = 'candidate.png'
DIFF_FILENAME = 'diff.png'
REPORT_JSON_FILENAME = 'report.json'
REPORT_HTML_FILENAME = 'report.html'

_RUN_ID_PATTERN = re.compile(r'^[0-9a-f]{32}$')

logger = logging.getLogger(__name__)


def normalize_path(path: str | Path) -> Path:
    """Convert string path to normalized Path object."""
    return Path(path).resolve()


def ensure_directory(directory: Path) -> None:
    """Ensure directory exists, create if necessary."""
    Path(directory).mkdir(parents=True, exist_ok=True)


def is_image_file(filename: Optional[str]) -> bool:
    """Check the extension of an uploaded file name."""
    if not filename:
        return False
    return Path(filename).suffix.lower() in IMAGE_EXTENSIONS


def new_run_directory(base_dir: str | Path) -> Tuple[str, Path]:
    """
    Create a fresh directory for one comparison run.

    Every run gets its own directory so concurrent comparisons never
    overwrite each other's artifacts.

    Returns:
        (run_id, directory path)
    """
    run_id = uuid.uuid4().hex
    run_dir = normalize_path(base_dir) / run_id
    ensure_directory(run_dir)
    return run_id, run_dir


def is_valid_run_id(run_id: str) -> bool:
    return bool(_RUN_ID_PATTERN.match(run_id or ''))


def resolve_artifact(base_dir: str | Path, run_id: str, filename: str) -> Optional[Path]:
    """
    Locate an artifact of a run, refusing anything outside the run directory.

    Returns:
        Path of the existing artifact, or None
    """
    if not is_valid_run_id(run_id):
        return None
    run_dir = normalize_path(base_dir) / run_id
    candidate = (run_dir / filename).resolve()
    if candidate.parent != run_dir or not candidate.is_file():
        return None
    return candidate


def prune_run_directories(base_dir: str | Path, max_age: float, now: Optional[float] = None) -> int:
    """
    Remove run directories whose last modification is older than `max_age` seconds.

    Only directories named like a run id are touched. A `max_age` of 0 disables pruning.

    Returns:
        Number of directories removed
    """
    base = Path(base_dir)
    if max_age <= 0 or not base.is_dir():
        return 0
    cutoff = (time.time() if now is None else now) - max_age
    removed = 0
    for entry in base.iterdir():
        if not entry.is_dir() or not is_valid_run_id(entry.name):
            continue
        try:
            if entry.stat().st_mtime >= cutoff:
                continue
        except FileNotFoundError:
            # Removed concurrently by another request.
            continue
        shutil.rmtree(entry, ignore_errors=True)
        removed += 1
    if removed:
        logger.info("Pruned %d stale run directories from %s", removed, base)
    return removed
