"""
Unit tests for the retry helper
"""

import pytest
from unittest.mock import AsyncMock, patch
from core.retry import backoff_delay, is_retryable_error, with_retry
from core.exceptions import (
    DatabaseAuthorizationError,
    DatabaseConnectionError,
    NetworkError,
    ObjectNotFoundError,
)


class TestBackoffDelay:
    """Test the exponential schedule"""

    def test_doubles_each_attempt(self):
        delays = [backoff_delay(attempt, 1.0, jitter=False) for attempt in (1, 2, 3)]
        assert delays == [1.0, 2.0, 4.0]

    def test_jitter_stays_within_a_quarter(self):
        for _ in range(50):
            delay = backoff_delay(3, 1.0, jitter=True)
            assert 4.0 <= delay <= 5.0


class TestRetryClassification:

    def test_transient_errors_are_retryable(self):
        assert is_retryable_error(NetworkError("reset"))
        assert is_retryable_error(DatabaseConnectionError("refused"))

    def test_non_retryable_errors(self):
        assert not is_retryable_error(ObjectNotFoundError("missing"))
        assert not is_retryable_error(DatabaseAuthorizationError("bad password"))


class TestWithRetry:
    """Test retry loop behavior"""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        operation = AsyncMock(return_value="ok")

        with patch("core.retry.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            result = await with_retry(operation, max_attempts=3, base_delay=1.0)

        assert result == "ok"
        assert operation.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        operation = AsyncMock(side_effect=[NetworkError("reset"), NetworkError("reset"), "ok"])

        with patch("core.retry.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            result = await with_retry(operation, max_attempts=3, base_delay=1.0, jitter=False)

        assert result == "ok"
        assert operation.await_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_reraises_last_error_when_exhausted(self):
        errors = [DatabaseConnectionError("refused 1"), DatabaseConnectionError("refused 2"),
                  DatabaseConnectionError("refused 3")]
        operation = AsyncMock(side_effect=errors)

        with patch("core.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(DatabaseConnectionError) as exc_info:
                await with_retry(operation, max_attempts=3, base_delay=1.0)

        assert exc_info.value is errors[-1]
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_raised_immediately(self):
        operation = AsyncMock(side_effect=ObjectNotFoundError("missing"))

        with patch("core.retry.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            with pytest.raises(ObjectNotFoundError):
                await with_retry(operation, max_attempts=3, base_delay=1.0)

        assert operation.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_predicate_rejects_error(self):
        operation = AsyncMock(side_effect=RuntimeError("boom"))

        with patch("core.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(RuntimeError):
                await with_retry(
                    operation,
                    max_attempts=3,
                    is_retryable=lambda e: isinstance(e, NetworkError)
                )

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            await with_retry(AsyncMock(), max_attempts=0)
