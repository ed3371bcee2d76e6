"""
Bounded retry with exponential backoff for the Skill Validator.

Judge calls go through ``RetryManager.execute_with_retry_async``: a fixed
number of attempts, an optional per-attempt timeout, and every failure
kept so the caller can report all of them once retries run out.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

from ..config import JudgeConfig
from ..exceptions import RetryExhaustedError, TimeoutError
from .timeout_manager import TimeoutManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryManager:
    """Manages retries with exponential backoff.

    Usage:
        retry = RetryManager.from_config(config.judge)
        reply = await retry.execute_with_retry_async(
            lambda: evaluator.complete(...),
            operation_name="judge call (forward)",
            attempt_timeout=config.judge.timeout_seconds,
        )

    Attributes:
        max_retries: Retries after the first attempt (attempts = max_retries + 1)
        base_delay: Delay before the first retry (doubles each time)
    """

    def __init__(self, max_retries: int = 2, base_delay: float = 1.0):
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay

    @classmethod
    def from_config(cls, config: JudgeConfig) -> "RetryManager":
        """Build the retry policy used for judge calls."""
        return cls(
            max_retries=config.max_retries,
            base_delay=config.retry_delay_seconds,
        )

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    async def execute_with_retry_async(
        self,
        func: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
        attempt_timeout: Optional[float] = None,
    ) -> T:
        """Execute an async function with retry logic.

        Each attempt calls ``func`` again, so a fresh coroutine (a new
        evaluator round-trip) is made every time.

        Args:
            func: Zero-argument callable returning an awaitable
            operation_name: Name for logging
            retryable_exceptions: Exception types to retry on
            attempt_timeout: Seconds allowed per attempt (None = unbounded)

        Returns:
            Result of the first successful attempt

        Raises:
            RetryExhaustedError: If every attempt failed
        """
        failures: List[BaseException] = []

        for attempt in range(self.attempts):
            try:
                if attempt_timeout is None:
                    return await func()
                return await TimeoutManager.with_timeout(
                    func(),
                    attempt_timeout,
                    f"{operation_name} timed out after {attempt_timeout}s",
                )

            except retryable_exceptions as e:
                failures.append(e)

                if attempt < self.max_retries:
                    delay = self._calculate_delay(attempt)
                    kind = "timed out" if isinstance(e, TimeoutError) else "failed"
                    logger.warning(
                        f"{operation_name} {kind} (attempt {attempt + 1}/{self.attempts}), "
                        f"retrying in {delay:.1f}s: {e}"
                    )
                    if delay > 0:
                        await asyncio.sleep(delay)
                else:
                    logger.error(
                        f"{operation_name} failed after {self.attempts} attempts: {e}"
                    )

        raise RetryExhaustedError(operation_name, failures) from failures[-1]

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number.

        Uses exponential backoff: delay = base_delay * 2^attempt

        Args:
            attempt: Attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        return self.base_delay * (2 ** attempt)
