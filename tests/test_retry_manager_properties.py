"""
Property-based tests for the Retry Manager module.

Uses Hypothesis to check exponential backoff, the attempt budget and that
only transport failures are retried.
"""

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_sniper.config import RetryConfig
from domain_sniper.enums import RejectionReason
from domain_sniper.exceptions import ConfigurationError, TransportError, VendorRejection
from domain_sniper.retry_manager import RetryManager, RetryResult, is_transient


# Strategies for generating test data

@st.composite
def retry_config_strategy(draw) -> RetryConfig:
    """Generate valid RetryConfig objects."""
    return RetryConfig(
        max_retries=draw(st.integers(min_value=0, max_value=5)),
        base_delay_seconds=draw(st.floats(min_value=0.001, max_value=2.0)),
        max_delay_seconds=draw(st.floats(min_value=2.0, max_value=60.0)),
    )


transient_error_strategy = st.sampled_from([
    TransportError(code="timeout", message="timed out"),
    TransportError(code="network_error", message="connection refused"),
    TransportError(code="server_error", message="503"),
])

permanent_error_strategy = st.sampled_from([
    VendorRejection(RejectionReason.PERMISSION_DENIED, "not granted", 403),
    VendorRejection(RejectionReason.NOT_AVAILABLE, "not available", 400),
    ConfigurationError(code="missing_credentials", message="no key"),
    ValueError("unexpected"),
])


class RecordingSleep:
    """Replacement for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestExponentialBackoffProperty:
    """
    **Property 1: Exponential backoff on transient errors**
    """

    @given(
        config=retry_config_strategy(),
        num_attempts=st.integers(min_value=1, max_value=8),
    )
    @settings(max_examples=100)
    def test_exponential_backoff_delay_calculation(
        self,
        config: RetryConfig,
        num_attempts: int,
    ) -> None:
        """
        *For any* configuration, delay(n) SHALL equal base_delay * 2^n
        capped at max_delay, and never decrease.
        """
        retry_manager = RetryManager(config)

        delays = []
        for attempt in range(num_attempts):
            delay = retry_manager._calculate_delay(attempt)
            delays.append(delay)

            expected_delay = min(config.base_delay_seconds * (2 ** attempt), config.max_delay_seconds)
            assert abs(delay - expected_delay) < 0.0001, (
                f"Delay for attempt {attempt} should be {expected_delay}, got {delay}"
            )

        for i in range(1, len(delays)):
            assert delays[i] >= delays[i - 1]
            assert delays[i] <= config.max_delay_seconds

    @given(config=retry_config_strategy(), error=transient_error_strategy)
    @settings(max_examples=100, deadline=None)
    def test_sleeps_between_attempts(self, config: RetryConfig, error: Exception) -> None:
        """
        *For any* always-failing transient operation, the manager SHALL sleep
        once between consecutive attempts with the backoff delays.
        """
        sleep = RecordingSleep()
        retry_manager = RetryManager(config, sleep=sleep)

        async def failing():
            raise error

        asyncio.run(retry_manager.execute_with_retry(failing))

        assert len(sleep.delays) == config.max_retries
        assert sleep.delays == [retry_manager._calculate_delay(n) for n in range(config.max_retries)]


class TestMaxRetriesExhaustedProperty:
    """
    **Property 2: Attempts are bounded by max_retries + 1**
    """

    @given(config=retry_config_strategy(), error=transient_error_strategy)
    @settings(max_examples=100, deadline=None)
    def test_max_retries_exhausted_returns_failure(
        self,
        config: RetryConfig,
        error: Exception,
    ) -> None:
        retry_manager = RetryManager(config, sleep=RecordingSleep())
        call_count = 0

        async def always_failing_operation():
            nonlocal call_count
            call_count += 1
            raise error

        result: RetryResult = asyncio.run(retry_manager.execute_with_retry(always_failing_operation))

        assert result.attempts == config.max_retries + 1
        assert call_count == config.max_retries + 1
        assert not result.success
        assert result.result is None
        assert result.last_error is error

    @given(config=retry_config_strategy(), failures=st.integers(min_value=0, max_value=5))
    @settings(max_examples=100, deadline=None)
    def test_recovers_after_transient_failures(self, config: RetryConfig, failures: int) -> None:
        """
        *For any* operation that fails transiently fewer times than the
        budget allows, the manager SHALL return its eventual value.
        """
        retry_manager = RetryManager(config, sleep=RecordingSleep())
        remaining = failures

        async def flaky():
            nonlocal remaining
            if remaining:
                remaining -= 1
                raise TransportError(code="timeout", message="timed out")
            return 1_700_000_000

        result = asyncio.run(retry_manager.execute_with_retry(flaky))

        if failures <= config.max_retries:
            assert result.success
            assert result.result == 1_700_000_000
            assert result.attempts == failures + 1
        else:
            assert not result.success
            assert result.attempts == config.max_retries + 1


class TestNoRetryOnPermanentErrorProperty:
    """
    **Property 3: Rejections and configuration errors are not retried**
    """

    @given(config=retry_config_strategy(), error=permanent_error_strategy)
    @settings(max_examples=100, deadline=None)
    def test_permanent_errors_stop_immediately(self, config: RetryConfig, error: Exception) -> None:
        retry_manager = RetryManager(config, sleep=RecordingSleep())
        call_count = 0

        async def rejected():
            nonlocal call_count
            call_count += 1
            raise error

        result = asyncio.run(retry_manager.execute_with_retry(rejected))

        assert call_count == 1
        assert result.attempts == 1
        assert result.last_error is error
        assert not is_transient(error)

    @given(error=st.one_of(transient_error_strategy, permanent_error_strategy))
    @settings(max_examples=50, deadline=None)
    def test_call_reraises_last_error(self, error: Exception) -> None:
        retry_manager = RetryManager(RetryConfig(max_retries=1), sleep=RecordingSleep())

        async def failing():
            raise error

        with pytest.raises(type(error)) as exc_info:
            asyncio.run(retry_manager.call(failing))
        assert exc_info.value is error

    def test_call_returns_value(self) -> None:
        retry_manager = RetryManager(RetryConfig())

        async def ok():
            return {"nichandle": "ab12345-ovh"}

        assert asyncio.run(retry_manager.call(ok)) == {"nichandle": "ab12345-ovh"}
