from __future__ import annotations
"""Bounded retry with exponential backoff around a single provider call.

Only failures that may clear up on their own (timeouts, backend errors) are
retried. Malformed responses are deterministic and surface at once. The
sleep function is injected so tests can run without real delays.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from core.errors import BackendError, ProviderTimeoutError
from core.logging import logger

from .providers import BaseProvider, ProviderConfig, ProviderResponse

__all__ = ["RETRYABLE_ERRORS", "RetryPolicy", "call_with_retry"]

RETRYABLE_ERRORS = (ProviderTimeoutError, BackendError)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 2          # additional calls after the first one
    base_delay: float = 1.0    # seconds
    max_delay: float = 10.0    # seconds

    def __post_init__(self) -> None:
        if self.attempts < 0:
            raise ValueError("attempts must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)


async def call_with_retry(
    provider: BaseProvider,
    prompt: str,
    model: str,
    config: ProviderConfig,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> ProviderResponse:
    """Call ``provider`` at most ``1 + policy.attempts`` times."""
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return await provider.call(prompt, model, config)
        except RETRYABLE_ERRORS as e:
            if attempt >= policy.attempts:
                logger.error(f"{provider.name} failed after {attempt + 1} attempt(s): {e}")
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{provider.name} attempt {attempt + 1} failed ({type(e).__name__}), retrying in {delay:.2f}s"
            )
            if on_retry is not None:
                on_retry(attempt + 1, e, delay)
            await sleep(delay)
            attempt += 1
