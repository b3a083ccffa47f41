"""
Retry Utilities Module
Bounded retry with exponential delay for upstream image acquisition.
"""

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

from core.config import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar('T')


def call_with_retry(func: Callable[[], T],
                    retry: RetryPolicy,
                    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                    description: str = 'operation',
                    sleep: Callable[[float], None] = time.sleep) -> T:
    """
    Call `func` until it succeeds or `retry.max_attempts` is exhausted.

    Only exceptions listed in `retry_on` are retried; the last one is re-raised.
    """
    attempts = max(1, retry.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as e:
            if attempt >= attempts:
                logger.error("%s failed after %d attempts: %s", description, attempts, e)
                raise
            delay = retry.delay_for(attempt)
            logger.warning("%s attempt %d failed: %s; retrying in %.2fs", description, attempt, e, delay)
            sleep(delay)
    raise AssertionError('unreachable')
