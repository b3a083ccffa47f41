"""
Comparison Worker Module
Runs comparisons on a thread pool so request threads are not tied up by pixel work.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

from core.comparison import analyse
from core.errors import ComparisonCancelled
from core.policy import ComparisonPolicy
from core.raster import ImageSource
from core.result import ComparisonResult

logger = logging.getLogger(__name__)


class ComparisonJob:
    """Handle to a submitted comparison."""

    def __init__(self, future: Future, cancel_event: threading.Event):
        self.future = future
        self.cancel_event = cancel_event

    def cancel(self) -> None:
        """Stop the job: dequeue it if it has not started, otherwise signal it to stop at the next check."""
        self.cancel_event.set()
        self.future.cancel()

    def result(self, timeout: Optional[float] = None) -> ComparisonResult:
        try:
            return self.future.result(timeout=timeout)
        except FutureTimeout:
            self.cancel()
            raise ComparisonCancelled(f"Comparison did not finish within {timeout} seconds", timeout=timeout)


class ComparisonWorker:
    def __init__(self, max_workers: int = 2):
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='comparison')

    def __enter__(self) -> 'ComparisonWorker':
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()

    def submit(self, reference: ImageSource, candidate: ImageSource,
               policy: Optional[ComparisonPolicy] = None) -> ComparisonJob:
        cancel_event = threading.Event()
        future = self._executor.submit(analyse, reference, candidate, policy, cancel_event)
        logger.debug("Submitted comparison job %s", id(future))
        return ComparisonJob(future, cancel_event)

    def run(self, reference: ImageSource, candidate: ImageSource,
            policy: Optional[ComparisonPolicy] = None,
            timeout: Optional[float] = None) -> ComparisonResult:
        return self.submit(reference, candidate, policy).result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
