"""
Evaluator clients for LLM judging.

An Evaluator takes a system instruction and a single user prompt and
returns the model's text reply. The Anthropic client is an owned
resource: created lazily on first use and released once by ``aclose()``.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Union

from anthropic import APIError, AsyncAnthropic

from ..config import JudgeConfig
from ..exceptions import JudgeError

logger = logging.getLogger(__name__)


class Evaluator(ABC):
    """Abstract judge/evaluator boundary.

    Usage:
        async with AnthropicEvaluator(config.judge) as evaluator:
            text = await evaluator.complete(
                model="claude-sonnet-4-20250514",
                system=SYSTEM_PROMPT,
                prompt=user_prompt,
                timeout=120,
            )
    """

    @abstractmethod
    async def complete(
        self,
        model: str,
        system: str,
        prompt: str,
        timeout: Optional[float] = None,
    ) -> str:
        """Send one prompt and return the reply text.

        Raises:
            JudgeError: If the call fails or returns no content
        """
        pass

    async def aclose(self) -> None:
        """Release any held resources. Safe to call more than once."""
        return None

    async def __aenter__(self) -> "Evaluator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class AnthropicEvaluator(Evaluator):
    """Evaluator backed by the Anthropic Messages API.

    The ``anthropic.AsyncAnthropic`` client is created on first use and
    owns its HTTP transport. SDK-level retries are disabled; retrying is
    the judge's job.
    """

    def __init__(self, config: JudgeConfig, api_key: Optional[str] = None):
        """Initialize evaluator.

        Args:
            config: Judge configuration (sampling and timeout settings)
            api_key: API key (defaults to ANTHROPIC_API_KEY)
        """
        self.config = config
        self.api_key = api_key
        self._client = None

    @property
    def client(self):
        """Lazy-load the Anthropic client."""
        if self._client is None:
            try:
                self._client = AsyncAnthropic(
                    api_key=self.api_key,
                    timeout=self.config.timeout_seconds,
                    max_retries=0,
                )
            except Exception as e:
                raise JudgeError(f"Failed to initialize Anthropic client: {e}")
        return self._client

    async def complete(
        self,
        model: str,
        system: str,
        prompt: str,
        timeout: Optional[float] = None,
    ) -> str:
        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout or self.config.timeout_seconds,
            )
        except APIError as e:
            # Connection failures and timeouts are APIError subclasses too
            raise JudgeError(f"Evaluator request failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text:
            raise JudgeError("Evaluator returned no content")
        return text

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        logger.debug("Evaluator client closed")


Response = Union[str, Exception, Callable[[str, str], str]]


class MockEvaluator(Evaluator):
    """Mock evaluator for testing.

    Replies are taken from ``responses`` in order; once exhausted,
    ``default_response`` is used. An entry may be a string, an exception
    to raise, or a callable ``(system, prompt) -> str``.
    """

    def __init__(
        self,
        responses: Optional[List[Response]] = None,
        default_response: Optional[Response] = None,
        delay_seconds: float = 0.0,
    ):
        self.responses = list(responses or [])
        self.default_response = default_response
        self.delay_seconds = delay_seconds
        self.closed = False

        # Track calls for assertions
        self.calls: List[Dict[str, Any]] = []

    async def complete(
        self,
        model: str,
        system: str,
        prompt: str,
        timeout: Optional[float] = None,
    ) -> str:
        self.calls.append({
            "model": model,
            "system": system,
            "prompt": prompt,
            "timeout": timeout,
            "started_at": time.monotonic(),
        })

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        response = self.responses.pop(0) if self.responses else self.default_response
        if response is None:
            raise JudgeError("MockEvaluator has no response left")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(system, prompt)
        return response

    async def aclose(self) -> None:
        self.closed = True

    @property
    def call_count(self) -> int:
        return len(self.calls)
