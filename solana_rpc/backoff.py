"""
Backoff Policy

Decides whether a failed attempt is retried and how long to wait first.
Delays grow linearly: attempt n waits delay * n.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from .errors import FatalError, RpcError

logger = logging.getLogger(__name__)


class Decision(Enum):
    """Outcome of classifying a failure."""
    RETRY = "retry"
    FATAL = "fatal"


@dataclass
class BackoffPolicy:
    """
    Linear backoff capped at max_attempts.

    Attempts are numbered from 1. After attempt n fails with a retryable
    error, the caller waits next_delay(n) before attempt n + 1; no wait
    follows the final attempt.
    """

    max_attempts: int = 3
    delay: float = 1.0

    # Replaceable for tests
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def next_delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        attempt = max(1, min(attempt, self.max_attempts))
        return self.delay * attempt

    def classify(self, error: BaseException) -> Decision:
        """
        Split failures into retryable and fatal.

        Remote errors are retryable only for rate limiting and unhealthy
        nodes. Explicit fatal rejections never retry. Anything else is a
        transport-level failure (timeout, reset, bad body) and is retried.
        """
        if isinstance(error, FatalError):
            return Decision.FATAL
        if isinstance(error, RpcError):
            return Decision.RETRY if error.retryable else Decision.FATAL
        return Decision.RETRY

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        if attempt >= self.max_attempts:
            return False
        return self.classify(error) is Decision.RETRY

    async def wait(self, attempt: int) -> float:
        """Sleep for the delay that follows the given failed attempt."""
        delay = self.next_delay(attempt)
        logger.debug(f"Backing off {delay:.3f}s after attempt {attempt}/{self.max_attempts}")
        await self.sleep(delay)
        return delay
