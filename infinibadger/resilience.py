"""Retry helpers for remote RDS calls.

Retries are opt-in. The default :class:`RetryConfig` makes exactly one
attempt, so a failing call aborts the cycle and the next scheduled tick picks
up from the saved download state. Operators with a throttled API can raise
``source.retry_attempts`` to absorb short blips inside a cycle.

Implementation: uses tenacity for the retry loop.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple, Type

import tenacity
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

__all__ = ["RetryConfig", "retry_operation"]


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 1,
        backoff_seconds: float = 1.0,
        exponential: bool = True,
        jitter: bool = True,
        retry_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential
        self.jitter = jitter
        self.retry_exceptions = retry_exceptions or (Exception,)

    @classmethod
    def none(cls) -> "RetryConfig":
        """No retry - fail immediately."""
        return cls(max_attempts=1)

    def _wait_strategy(self) -> wait_base:
        wait_strategy: wait_base
        if self.exponential:
            wait_strategy = tenacity.wait_exponential(
                multiplier=self.backoff_seconds, min=self.backoff_seconds
            )
        else:
            wait_strategy = tenacity.wait_fixed(self.backoff_seconds)

        if self.jitter:
            wait_strategy = wait_strategy + tenacity.wait_random(0, self.backoff_seconds * 0.5)
        return wait_strategy


def retry_operation(
    operation: Callable[[], Any],
    config: RetryConfig,
    operation_name: str = "operation",
) -> Any:
    """Execute an operation with retry logic.

    Args:
        operation: Callable to execute
        config: Retry configuration
        operation_name: Name for logging

    Returns:
        Result of the operation

    Example:
        portion = retry_operation(
            lambda: client.download_db_log_file_portion(**params),
            RetryConfig(max_attempts=3),
            "download_db_log_file_portion",
        )
    """
    if config.max_attempts == 1:
        return operation()

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
            operation_name,
            retry_state.attempt_number,
            config.max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    retryer = tenacity.Retrying(
        stop=tenacity.stop_after_attempt(config.max_attempts),
        wait=config._wait_strategy(),
        retry=tenacity.retry_if_exception_type(config.retry_exceptions),
        before_sleep=before_sleep_handler,
        reraise=True,
    )

    try:
        return retryer(operation)
    except Exception:
        logger.error(
            "%s failed after %d attempts",
            operation_name,
            config.max_attempts,
        )
        raise
