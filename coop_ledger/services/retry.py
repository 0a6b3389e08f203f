"""Bounded retry with exponential backoff for conflicting units of work"""

import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from coop_ledger.config import settings
from coop_ledger.domain.exceptions import ConcurrencyConflict

T = TypeVar("T")

logger = logging.getLogger(__name__)


def run_with_retries(
    operation: Callable[[], T],
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    retry_on: Tuple[Type[Exception], ...] = (ConcurrencyConflict,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run an operation, retrying it when it loses a race.

    Retry strategy:
    - Exponential backoff: base, 2x base, 4x base ... (base * 2^(attempt-1))
    - Only exceptions in retry_on are retried; anything else propagates at once
    - After max_retries attempts the last error is raised to the caller

    The operation must be a whole unit of work (it opens and commits its own
    transaction), so a retry never sees partial state from the failed attempt.
    """
    max_retries = max_retries if max_retries is not None else settings.conflict_max_retries
    backoff_base = backoff_base if backoff_base is not None else settings.conflict_backoff_base

    attempt = 0
    while True:
        try:
            return operation()
        except retry_on as e:
            attempt += 1
            if attempt >= max_retries:
                # Final failure after all retries
                raise

            backoff = backoff_base * (2 ** (attempt - 1))
            logger.warning(
                "Retrying after %s", type(e).__name__,
                extra={"attempt": attempt, "backoff_seconds": backoff},
            )
            sleep(backoff)
