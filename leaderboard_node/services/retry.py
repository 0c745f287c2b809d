from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from leaderboard_node.errors import StoreUnavailableError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def call_with_store_retry(
    fn: Callable[[], T],
    *,
    operation: str,
    retries: int,
    backoff_seconds: float,
) -> T:
    """Run `fn`, retrying on StoreUnavailableError with a linear backoff."""
    for attempt in range(retries):
        try:
            return fn()
        except StoreUnavailableError as exc:
            logger.warning("%s attempt %d/%d failed: %s", operation, attempt + 1, retries, exc)
            if attempt >= retries - 1:
                raise
            time.sleep(backoff_seconds * (attempt + 1))
    raise AssertionError("unreachable")
