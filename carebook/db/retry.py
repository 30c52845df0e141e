# carebook/db/retry.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from carebook.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Connection-level failures only. Business rejections (BookingError) and
# constraint violations are never retried.
TRANSIENT_ERRORS = (OperationalError, InterfaceError)


async def run_with_retry(
    unit_of_work: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    base_delay: float | None = None,
    label: str = "store call",
) -> T:
    """
    Run `unit_of_work` (which must open its own session) and retry it with
    exponential backoff on transient database errors.
    """
    attempts = attempts or settings.STORE_RETRY_ATTEMPTS
    base_delay = settings.STORE_RETRY_BASE_DELAY if base_delay is None else base_delay

    for attempt in range(1, attempts + 1):
        try:
            return await unit_of_work()
        except TRANSIENT_ERRORS as exc:
            if attempt == attempts:
                logger.error("%s failed after %d attempts: %s", label, attempts, exc)
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                label, attempt, attempts, delay, exc,
            )
            await asyncio.sleep(delay)
    raise RuntimeError("unreachable")
