"""
Base Worker Utilities
Retry policy for remote calls made from background jobs.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from imagestudio.core.errors import ImageStudioError, is_transient

logger = logging.getLogger(__name__)

T = TypeVar('T')


class InvalidStagedFileError(ImageStudioError):
    """A staged input is not the PNG the remote service expects. Not retried."""


class RetryPolicy:
    """
    Bounded retries for transient failures.

    Args:
        max_attempts: Total attempts, including the first one
        base_delay: Linear backoff base; the wait after attempt n is base_delay * n
        sleep: Awaitable sleep, swappable in tests
        classify: Decides whether an exception is worth another attempt
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        classify: Callable[[BaseException], bool] = is_transient,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.sleep = sleep
        self.classify = classify

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return self.base_delay * attempt

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        """Await `operation()` until it succeeds, fails permanently, or attempts run out."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if not self.classify(e):
                    logger.error(f"[Non-Retryable] {label}: {e}")
                    raise
                if attempt >= self.max_attempts:
                    logger.error(f"[Failed] {label} exhausted all {self.max_attempts} attempts: {e}")
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    f"[Retry {attempt}/{self.max_attempts}] {label} network error: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await self.sleep(delay)

        raise RuntimeError("unreachable")  # pragma: no cover


__all__ = ["InvalidStagedFileError", "RetryPolicy"]
