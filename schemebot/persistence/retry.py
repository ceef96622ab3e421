"""Bounded exponential backoff for transient infrastructure failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from schemebot.config import settings
from schemebot.errors import InfrastructureError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    description: str,
    attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
) -> T:
    """Run `operation`, retrying on InfrastructureError.

    Sleeps base_delay, 2·base_delay, ... capped at max_delay between tries.
    Other exceptions propagate immediately. The last InfrastructureError is
    re-raised once the attempts are used up.
    """
    policy = settings.persistence
    attempts = attempts if attempts is not None else policy.retry_attempts
    base_delay = base_delay if base_delay is not None else policy.retry_base_delay
    max_delay = max_delay if max_delay is not None else policy.retry_max_delay

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except InfrastructureError:
            if attempt == attempts:
                logger.error("%s failed after %d attempts", description, attempts)
                raise
            delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
            logger.warning("%s failed (attempt %d/%d), retrying in %.2fs", description, attempt, attempts, delay)
            await asyncio.sleep(delay)
    msg = f"{description}: no attempts configured"
    raise InfrastructureError(msg)
