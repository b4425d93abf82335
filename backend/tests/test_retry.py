"""
Tests for retry with exponential backoff.
"""
import pytest
from unittest.mock import patch, MagicMock

import httpx
import redis

from apps.store.retry import (
    RetryExhausted,
    STORE_RETRY_CONFIG,
    GENERATION_RETRY_CONFIG,
    calculate_backoff,
    is_retriable_error,
    retry_with_backoff,
)


# ============================================================================
# Backoff Calculation Tests
# ============================================================================

class TestCalculateBackoff:
    """Tests for calculate_backoff."""

    def test_doubles_each_attempt(self):
        """Backoff should grow geometrically from the initial value."""
        assert calculate_backoff(0, 0.3, 2.0, 5.0, 0.0) == pytest.approx(0.3)
        assert calculate_backoff(1, 0.3, 2.0, 5.0, 0.0) == pytest.approx(0.6)
        assert calculate_backoff(2, 0.3, 2.0, 5.0, 0.0) == pytest.approx(1.2)

    def test_capped_at_max(self):
        """Backoff should never exceed max_backoff."""
        assert calculate_backoff(10, 1.0, 2.0, 8.0, 0.0) == 8.0

    def test_jitter_stays_in_range(self):
        """Jitter should stay within the configured percentage."""
        for _ in range(20):
            backoff = calculate_backoff(0, 1.0, 2.0, 8.0, 0.25)
            assert 0.75 <= backoff <= 1.25


# ============================================================================
# Retriability Tests
# ============================================================================

class TestIsRetriableError:
    """Tests for is_retriable_error."""

    def test_redis_connection_error_retriable(self):
        """Redis connection failures should be retried."""
        assert is_retriable_error(redis.exceptions.ConnectionError("reset by peer"))

    def test_httpx_transport_error_retriable(self):
        """httpx transport errors should be retried."""
        assert is_retriable_error(httpx.ConnectError("refused"))

    def test_server_errors_retriable(self):
        """5xx and overload messages should be retried."""
        assert is_retriable_error(Exception("Gemini API error 503: overloaded"))
        assert is_retriable_error(Exception("Gemini API timed out"))

    def test_client_errors_not_retriable(self):
        """4xx and configuration errors should not be retried."""
        assert not is_retriable_error(Exception("Gemini API error 400: bad request"))
        assert not is_retriable_error(Exception("GEMINI_API_KEY not configured"))
        assert not is_retriable_error(Exception("Request blocked by Gemini: SAFETY"))

    def test_wrong_type_not_retriable(self):
        """A WRONGTYPE reply is a programming error, not a hiccup."""
        assert not is_retriable_error(
            redis.exceptions.ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        )

    def test_unknown_error_retriable(self):
        """Unknown errors default to retriable."""
        assert is_retriable_error(Exception("something odd"))


# ============================================================================
# retry_with_backoff Tests
# ============================================================================

class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    def test_returns_first_success(self, no_backoff_sleep):
        """A successful call should not sleep or retry."""
        func = MagicMock(return_value="ok")

        assert retry_with_backoff(func, STORE_RETRY_CONFIG) == "ok"
        assert func.call_count == 1
        no_backoff_sleep.assert_not_called()

    def test_succeeds_after_transient_failures(self, no_backoff_sleep):
        """Should retry transient errors and return the eventual result."""
        func = MagicMock(side_effect=[
            redis.exceptions.ConnectionError("down"),
            redis.exceptions.ConnectionError("down"),
            "value",
        ])

        assert retry_with_backoff(func, STORE_RETRY_CONFIG, exceptions=(redis.RedisError,)) == "value"
        assert func.call_count == 3
        waits = [c.args[0] for c in no_backoff_sleep.call_args_list]
        assert waits == [pytest.approx(0.3), pytest.approx(0.6)]

    def test_exhaustion_after_three_attempts(self):
        """Store policy should make exactly 3 attempts, then raise RetryExhausted."""
        error = redis.exceptions.ConnectionError("down")
        func = MagicMock(side_effect=error)

        with pytest.raises(RetryExhausted) as exc_info:
            retry_with_backoff(func, STORE_RETRY_CONFIG, exceptions=(redis.RedisError,))

        assert func.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_exception is error

    def test_generation_policy_starts_at_one_second(self, no_backoff_sleep):
        """LLM policy waits 1s then 2s between its 3 attempts."""
        func = MagicMock(side_effect=Exception("503 unavailable"))

        with pytest.raises(RetryExhausted):
            retry_with_backoff(func, GENERATION_RETRY_CONFIG)

        waits = [c.args[0] for c in no_backoff_sleep.call_args_list]
        assert waits == [pytest.approx(1.0), pytest.approx(2.0)]

    def test_non_retriable_raised_immediately(self):
        """Non-retriable errors should propagate without retry."""
        func = MagicMock(side_effect=ValueError("invalid page"))

        with pytest.raises(ValueError):
            retry_with_backoff(func, STORE_RETRY_CONFIG)

        assert func.call_count == 1

    def test_unlisted_exception_type_propagates(self):
        """Exceptions outside the tuple are not caught at all."""
        func = MagicMock(side_effect=KeyError("boom"))

        with pytest.raises(KeyError):
            retry_with_backoff(func, STORE_RETRY_CONFIG, exceptions=(redis.RedisError,))

        assert func.call_count == 1

    def test_on_retry_callback(self):
        """on_retry should be called before each retry."""
        on_retry = MagicMock()
        func = MagicMock(side_effect=[Exception("timeout"), "ok"])

        retry_with_backoff(func, STORE_RETRY_CONFIG, on_retry=on_retry)

        on_retry.assert_called_once()
        attempt, error, backoff = on_retry.call_args.args
        assert attempt == 0
        assert backoff == pytest.approx(0.3)

    @patch('apps.store.retry.time.monotonic', return_value=100.0)
    def test_deadline_stops_retries(self, mock_monotonic, no_backoff_sleep):
        """No retry should start if its backoff would cross the deadline."""
        func = MagicMock(side_effect=Exception("timeout"))

        with pytest.raises(RetryExhausted) as exc_info:
            retry_with_backoff(func, GENERATION_RETRY_CONFIG, deadline=100.5)

        assert func.call_count == 1
        assert exc_info.value.attempts == 1
        no_backoff_sleep.assert_not_called()
