"""
Timeout management for the Skill Validator.

Agent runs and judge calls are coroutines, so timeouts are enforced with
``asyncio.wait_for`` and surfaced as the validator's own TimeoutError.
"""

import asyncio
import logging
from typing import Any, Awaitable

from ..exceptions import TimeoutError

logger = logging.getLogger(__name__)


class TimeoutManager:
    """Manages timeouts for asynchronous operations.

    Usage:
        result = await TimeoutManager.with_timeout(
            adapter.execute(request, emit),
            scenario.timeout,
            f"Agent run for {scenario.name} timed out",
        )
    """

    @staticmethod
    async def with_timeout(
        coro: Awaitable[Any],
        seconds: float,
        message: str = "Operation timed out",
    ) -> Any:
        """Execute a coroutine with timeout.

        The awaited coroutine is cancelled when the timer fires.

        Args:
            coro: Coroutine to execute
            seconds: Timeout in seconds
            message: Error message if timeout occurs

        Returns:
            The result of the coroutine

        Raises:
            TimeoutError: If the operation times out
        """
        try:
            return await asyncio.wait_for(coro, timeout=seconds)
        except asyncio.TimeoutError:
            logger.debug(f"{message} (after {seconds}s)")
            raise TimeoutError(message)
