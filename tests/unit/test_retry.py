"""
Unit tests for the retry executor.
"""
import asyncio
import time

import pytest

from callguard.infrastructure.resilience.retry import (
    AbortRetry, RetryPolicy, execute_with_retry, retry
)
from callguard.shared.exceptions import ConfigurationError, validation_error
from callguard.shared.types import BackoffStrategy


class TestRetryPolicy:
    """Test cases for retry policy configuration."""

    def test_defaults(self):
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.base_delay == 1.0
        assert policy.strategy is BackoffStrategy.EXPONENTIAL
        assert policy.on_retry is None

    def test_exponential_delays(self):
        policy = RetryPolicy(max_attempts=5, base_delay=0.1)
        delays = [policy.calculate_delay(attempt) for attempt in range(1, 5)]
        assert delays == pytest.approx([0.1, 0.2, 0.4, 0.8])

    def test_linear_delays(self):
        policy = RetryPolicy(max_attempts=5, base_delay=0.1, strategy=BackoffStrategy.LINEAR)
        delays = [policy.calculate_delay(attempt) for attempt in range(1, 5)]
        assert delays == pytest.approx([0.1, 0.2, 0.3, 0.4])

    def test_strategy_accepts_string(self):
        assert RetryPolicy(strategy="linear").strategy is BackoffStrategy.LINEAR

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"max_attempts": -1},
        {"base_delay": -0.5},
        {"strategy": "fibonacci"},
    ])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ConfigurationError):
            RetryPolicy(**kwargs)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("UPLOAD_RETRY_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("UPLOAD_RETRY_BASE_DELAY", "0.25")
        monkeypatch.setenv("UPLOAD_RETRY_BACKOFF", "LINEAR")

        policy = RetryPolicy.from_env("UPLOAD_RETRY")

        assert policy.max_attempts == 5
        assert policy.base_delay == 0.25
        assert policy.strategy is BackoffStrategy.LINEAR

    def test_from_env_invalid(self, monkeypatch):
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "many")

        with pytest.raises(ConfigurationError):
            RetryPolicy.from_env()


class TestExecuteWithRetry:
    """Test cases for execute_with_retry."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [0, 1, 2, 3])
    async def test_succeeds_after_failures(self, failures, flaky, recording_sleep):
        """Test that n < max_attempts failures lead to n + 1 invocations."""
        operation = flaky(failures, result=42)

        result = await execute_with_retry(
            operation, RetryPolicy(max_attempts=4, base_delay=0.1), sleep=recording_sleep
        )

        assert result == 42
        assert operation.calls == failures + 1
        assert len(recording_sleep.delays) == failures

    @pytest.mark.asyncio
    async def test_raises_error_of_final_attempt(self, flaky, recording_sleep):
        operation = flaky(10)

        with pytest.raises(ConnectionError) as exc_info:
            await execute_with_retry(
                operation, RetryPolicy(max_attempts=3, base_delay=0.1), sleep=recording_sleep
            )

        assert operation.calls == 3
        assert exc_info.value is operation.raised[-1]
        assert str(exc_info.value) == "failure 3"

    @pytest.mark.asyncio
    async def test_final_error_not_reclassified(self, flaky, recording_sleep):
        operation = flaky(10, error_factory=lambda n: KeyError(n))

        with pytest.raises(KeyError):
            await execute_with_retry(operation, RetryPolicy(max_attempts=2), sleep=recording_sleep)

    @pytest.mark.asyncio
    async def test_does_not_filter_by_kind(self, flaky, recording_sleep):
        """Test that even non-retryable kinds are retried by the executor itself."""
        operation = flaky(1, error_factory=lambda n: validation_error("bad input"))

        assert await execute_with_retry(operation, RetryPolicy(), sleep=recording_sleep) == "ok"
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, flaky, recording_sleep):
        operation = flaky(1)

        with pytest.raises(ConnectionError):
            await execute_with_retry(operation, RetryPolicy(max_attempts=1), sleep=recording_sleep)

        assert operation.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_exponential_backoff_elapsed_time(self, flaky, recording_sleep, fake_clock):
        """Test that elapsed time before each retry is the prefix sum of delays."""
        start = fake_clock()
        seen = []

        def on_retry(attempt, error):
            seen.append(fake_clock() - start)

        operation = flaky(4)
        await execute_with_retry(
            operation,
            RetryPolicy(max_attempts=5, base_delay=0.1, on_retry=on_retry),
            sleep=recording_sleep
        )

        assert recording_sleep.delays == pytest.approx([0.1, 0.2, 0.4, 0.8])
        # observer runs before the delay of its attempt
        assert seen == pytest.approx([0.0, 0.1, 0.3, 0.7])
        assert fake_clock() - start == pytest.approx(1.5)

    @pytest.mark.asyncio
    async def test_linear_backoff_delays(self, flaky, recording_sleep):
        operation = flaky(3)

        await execute_with_retry(
            operation,
            RetryPolicy(max_attempts=4, base_delay=0.1, strategy=BackoffStrategy.LINEAR),
            sleep=recording_sleep
        )

        assert recording_sleep.delays == pytest.approx([0.1, 0.2, 0.3])

    @pytest.mark.asyncio
    async def test_on_retry_receives_attempt_and_error(self, flaky, recording_sleep):
        calls = []
        operation = flaky(2)

        await execute_with_retry(
            operation,
            RetryPolicy(max_attempts=3, on_retry=lambda attempt, error: calls.append((attempt, error))),
            sleep=recording_sleep
        )

        assert calls == [(1, operation.raised[0]), (2, operation.raised[1])]

    @pytest.mark.asyncio
    async def test_async_on_retry_is_awaited(self, flaky, recording_sleep):
        attempts = []

        async def on_retry(attempt, error):
            await asyncio.sleep(0)
            attempts.append(attempt)

        await execute_with_retry(
            flaky(2), RetryPolicy(max_attempts=3, on_retry=on_retry), sleep=recording_sleep
        )

        assert attempts == [1, 2]

    @pytest.mark.asyncio
    async def test_on_retry_not_called_after_final_attempt(self, flaky, recording_sleep):
        attempts = []

        with pytest.raises(ConnectionError):
            await execute_with_retry(
                flaky(5),
                RetryPolicy(max_attempts=3, on_retry=lambda attempt, error: attempts.append(attempt)),
                sleep=recording_sleep
            )

        assert attempts == [1, 2]

    @pytest.mark.asyncio
    async def test_abort_retry_stops_immediately(self, recording_sleep):
        calls = 0
        rejection = validation_error("not retryable")

        async def operation():
            nonlocal calls
            calls += 1
            raise AbortRetry(rejection)

        with pytest.raises(type(rejection)) as exc_info:
            await execute_with_retry(operation, RetryPolicy(max_attempts=5), sleep=recording_sleep)

        assert exc_info.value is rejection
        assert calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_sync_operation_supported(self, recording_sleep):
        assert await execute_with_retry(lambda: "value", sleep=recording_sleep) == "value"

    @pytest.mark.asyncio
    async def test_cancelled_operation_counts_as_failure(self, recording_sleep):
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise asyncio.CancelledError()
            return "recovered"

        result = await execute_with_retry(operation, RetryPolicy(max_attempts=2), sleep=recording_sleep)

        assert result == "recovered"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_cancelling_the_caller_is_not_retried(self):
        calls = 0
        started = asyncio.Event()

        async def operation():
            nonlocal calls
            calls += 1
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(execute_with_retry(operation, RetryPolicy(max_attempts=5)))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert calls == 1

    @pytest.mark.asyncio
    async def test_real_timer_scenario(self, flaky):
        """Test exponential backoff with the real timer: 100ms + 200ms between attempts."""
        retried = []
        operation = flaky(2)

        started = time.monotonic()
        result = await execute_with_retry(
            operation,
            RetryPolicy(
                max_attempts=3,
                base_delay=0.1,
                strategy=BackoffStrategy.EXPONENTIAL,
                on_retry=lambda attempt, error: retried.append(attempt)
            )
        )
        elapsed = time.monotonic() - started

        assert result == "ok"
        assert operation.calls == 3
        assert retried == [1, 2]
        assert elapsed >= 0.29


class TestRetryDecorator:
    """Test cases for the retry decorator."""

    @pytest.mark.asyncio
    async def test_decorated_function_retried(self):
        calls = []

        @retry(max_attempts=3, base_delay=0.0)
        async def fetch_timestamp(service):
            calls.append(service)
            if len(calls) < 3:
                raise ConnectionError("refused")
            return 1700000000

        assert await fetch_timestamp("upload") == 1700000000
        assert calls == ["upload", "upload", "upload"]
        assert fetch_timestamp.__name__ == "fetch_timestamp"

    def test_decorator_validates_policy(self):
        with pytest.raises(ConfigurationError):
            retry(max_attempts=0)
