"""
Tests for retry logic.
"""

import pytest

from stale_entities.retry import RetryError, exponential_backoff, is_transient_error


class TestExponentialBackoff:
    """Test exponential backoff decorator."""

    def test_success_on_first_attempt(self):
        """Function that succeeds immediately should not retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01)
        def always_succeeds():
            call_count[0] += 1
            return "success"

        assert always_succeeds() == "success"
        assert call_count[0] == 1

    def test_success_after_retries(self):
        """Function that fails then succeeds should retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01)
        def fails_twice():
            call_count[0] += 1
            if call_count[0] < 3:
                raise ConnectionError("Temporary failure")
            return "success"

        assert fails_twice() == "success"
        assert call_count[0] == 3

    def test_all_retries_exhausted(self):
        """Should raise RetryError after max retries."""
        call_count = [0]

        @exponential_backoff(max_retries=2, base_delay=0.01)
        def always_fails():
            call_count[0] += 1
            raise ConnectionError("Permanent failure")

        with pytest.raises(RetryError) as exc_info:
            always_fails()

        assert call_count[0] == 3  # Initial + 2 retries
        assert "Failed after 3 attempts" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_specific_exceptions_only(self):
        """Should only retry specified exception types."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01, exceptions=(ConnectionError,))
        def raises_value_error():
            call_count[0] += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            raises_value_error()

        assert call_count[0] == 1

    def test_on_retry_callback(self):
        """on_retry callback should be called on each retry."""
        retry_calls = []

        def on_retry_callback(attempt, exception, delay):
            retry_calls.append((attempt, str(exception), delay))

        @exponential_backoff(max_retries=2, base_delay=0.01, on_retry=on_retry_callback)
        def always_fails():
            raise ConnectionError("Test error")

        with pytest.raises(RetryError):
            always_fails()

        assert len(retry_calls) == 2
        assert retry_calls[0][0] == 1
        assert retry_calls[1][0] == 2

    def test_exponential_delay(self):
        """Delays should increase exponentially."""
        delays = []

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exponential_base=2.0,
            on_retry=lambda attempt, exception, delay: delays.append(delay),
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert delays == [0.01, 0.02, 0.04]

    def test_max_delay_cap(self):
        """Delay should not exceed max_delay."""
        delays = []

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            max_delay=0.02,
            exponential_base=3.0,
            on_retry=lambda attempt, exception, delay: delays.append(delay),
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert all(d <= 0.02 for d in delays)

    def test_zero_retries(self):
        @exponential_backoff(max_retries=0, base_delay=0.01)
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()


class TestTransientErrorDetection:
    """Test transient database error detection."""

    @pytest.mark.parametrize("message", [
        "database is locked",
        "(sqlite3.OperationalError) database table is locked",
        "disk I/O error",
        "unable to open database file",
        "QueuePool limit reached, connection timed out, timeout 30",
    ])
    def test_transient(self, message):
        assert is_transient_error(Exception(message))

    @pytest.mark.parametrize("message", [
        "no such table: stale_queue",
        "syntax error",
        "UNIQUE constraint failed",
    ])
    def test_permanent(self, message):
        assert not is_transient_error(Exception(message))
