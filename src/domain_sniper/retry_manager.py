"""
Retry Manager for the domain sniper.

This module provides retry logic with exponential backoff for transient
failures of idempotent registrar reads (server time, account info, balance).
Order mutations are never routed through it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .config import RetryConfig
from .exceptions import TransportError

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]


def is_transient(error: Exception) -> bool:
    """Transport failures (connect errors, timeouts, 5xx) are worth retrying."""
    return isinstance(error, TransportError)


class RetryManager:
    """
    Manages retry logic with exponential backoff.

    Only exceptions accepted by the retry predicate are retried; anything
    else ends the operation on the first failure.
    """

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the retry manager.

        Args:
            config: Retry configuration with max_retries and delays
            sleep: Awaitable used between attempts
        """
        self._config = config
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate wait time with exponential backoff.

        delay(n) = base_delay * 2^n, capped at max_delay.

        Args:
            attempt: The current attempt number (0-indexed)

        Returns:
            The delay in seconds before the next retry
        """
        delay = self._config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._config.max_delay_seconds)

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Callable[[Exception], bool] = is_transient,
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic and exponential backoff.

        Args:
            operation: The async operation to execute
            is_retryable: Decides whether an exception warrants another attempt

        Returns:
            RetryResult containing success status, result, attempts, and last error
        """
        last_error: Optional[Exception] = None
        attempts = 0

        # Total attempts = 1 initial + max_retries
        max_attempts = self._config.max_retries + 1

        while attempts < max_attempts:
            try:
                result = await operation()
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempts + 1,
                    last_error=None,
                )
            except Exception as e:
                last_error = e
                attempts += 1

                if not is_retryable(e) or attempts >= max_attempts:
                    break

                await self._sleep(self._calculate_delay(attempts - 1))

        return RetryResult(
            success=False,
            result=None,
            attempts=attempts,
            last_error=last_error,
        )

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Callable[[Exception], bool] = is_transient,
    ) -> T:
        """
        Like execute_with_retry, but return the value or re-raise the last error.
        """
        outcome = await self.execute_with_retry(operation, is_retryable)
        if not outcome.success:
            raise outcome.last_error
        return outcome.result
