"""Tests for the bounded retry loop."""
import asyncio
import json

import pytest

from core.errors import BackendError, ProviderTimeoutError, ResponseShapeError
from genui.adapters.providers import MockProvider, ProviderConfig
from genui.adapters.router import RetryPolicy, call_with_retry


def scripted(*outcomes):
    """Responder that raises or returns the given outcomes in order."""
    remaining = list(outcomes)

    def responder(prompt, model):
        outcome = remaining.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return responder


class TestRetryPolicy:

    def test_exponential_delay_with_cap(self):
        policy = RetryPolicy(attempts=5, base_delay=1.0, max_delay=10.0)
        assert [policy.delay_for(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_defaults(self):
        policy = RetryPolicy()
        assert (policy.attempts, policy.base_delay, policy.max_delay) == (2, 1.0, 10.0)

    def test_negative_attempts_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(attempts=-1)


class TestCallWithRetry:

    @pytest.mark.asyncio
    async def test_two_timeouts_then_success(self, no_sleep, valid_output):
        provider = MockProvider(responder=scripted(
            ProviderTimeoutError("t1"), ProviderTimeoutError("t2"), valid_output,
        ))
        policy = RetryPolicy(attempts=3, base_delay=0.5, max_delay=10.0)

        response = await call_with_retry(provider, "p", "m", ProviderConfig(), policy, sleep=no_sleep)

        assert json.loads(response.text) == valid_output
        assert provider.calls == 3
        assert no_sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_backend_errors_are_retried_until_exhausted(self, no_sleep):
        provider = MockProvider(responder=scripted(
            BackendError("a"), BackendError("b"), BackendError("last"),
        ))

        with pytest.raises(BackendError, match="last"):
            await call_with_retry(provider, "p", "m", ProviderConfig(), RetryPolicy(attempts=2), sleep=no_sleep)
        assert provider.calls == 3
        assert len(no_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_shape_errors_are_not_retried(self, no_sleep):
        provider = MockProvider(responder=scripted(ResponseShapeError("no text"), {"never": "reached"}))

        with pytest.raises(ResponseShapeError):
            await call_with_retry(provider, "p", "m", ProviderConfig(), RetryPolicy(attempts=3), sleep=no_sleep)
        assert provider.calls == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_not_retried(self, no_sleep):
        provider = MockProvider(responder=scripted(KeyError("bug")))
        with pytest.raises(KeyError):
            await call_with_retry(provider, "p", "m", ProviderConfig(), RetryPolicy(attempts=3), sleep=no_sleep)
        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_zero_attempts_means_single_call(self, no_sleep):
        provider = MockProvider(responder=scripted(ProviderTimeoutError("t")))
        with pytest.raises(ProviderTimeoutError):
            await call_with_retry(provider, "p", "m", ProviderConfig(), RetryPolicy(attempts=0), sleep=no_sleep)
        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, no_sleep, valid_output):
        seen = []
        provider = MockProvider(responder=scripted(BackendError("x"), valid_output))

        await call_with_retry(
            provider, "p", "m", ProviderConfig(), RetryPolicy(attempts=1, base_delay=2.0),
            sleep=no_sleep, on_retry=lambda attempt, error, delay: seen.append((attempt, type(error), delay)),
        )

        assert seen == [(1, BackendError, 2.0)]

    @pytest.mark.asyncio
    async def test_cancellation_during_backoff_stops_retrying(self):
        provider = MockProvider(responder=scripted(BackendError("x"), {"never": "reached"}))
        task = asyncio.ensure_future(call_with_retry(
            provider, "p", "m", ProviderConfig(), RetryPolicy(attempts=1, base_delay=5.0),
        ))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert provider.calls == 1
