"""
Incident Responder - Retry Utilities
====================================

Bounded retry with exponential backoff for calls to external collaborators.
Nothing in the responder retries indefinitely: every caller states its
attempt budget.

Usage:
    from incident_responder.utils.retry import with_retry, RetryConfig

    @with_retry(RetryConfig(max_attempts=2, base_delay=0.5))
    async def ask_diagnosis_source():
        ...
"""

import asyncio
from dataclasses import dataclass, field
from functools import wraps
from typing import Callable, Type, TypeVar, Any, Optional
from collections.abc import Awaitable

from incident_responder.utils.logging import get_logger
from incident_responder.utils.timing import wait_or_stop

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Retry behaviour.

    Attributes:
        max_attempts: Attempts including the first call
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        backoff_multiplier: Growth factor between retries
        retryable_exceptions: Exception types that trigger a retry
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retryable_exceptions: tuple[Type[Exception], ...] = field(
        default_factory=lambda: (Exception,)
    )


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    backoff_multiplier: float
) -> float:
    """Exponential backoff delay for a 0-indexed attempt, capped at max_delay."""
    delay = base_delay * (backoff_multiplier ** attempt)
    return min(delay, max_delay)


def with_retry(
    config: Optional[RetryConfig] = None,
    stop_event: Optional[asyncio.Event] = None
):
    """
    Decorator that retries an async function according to ``config``.

    Exceptions outside ``retryable_exceptions`` propagate immediately; the
    last retryable exception is re-raised once attempts are exhausted, or
    as soon as ``stop_event`` fires during a backoff.
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(config.max_attempts):
                try:
                    return await func(*args, **kwargs)

                except config.retryable_exceptions as e:
                    if attempt + 1 >= config.max_attempts:
                        logger.warning(
                            f"All {config.max_attempts} attempts exhausted for {func.__name__}",
                            extra={"function": func.__name__, "error": str(e)}
                        )
                        raise

                    delay = calculate_delay(
                        attempt,
                        config.base_delay,
                        config.max_delay,
                        config.backoff_multiplier
                    )

                    logger.warning(
                        f"Retry {attempt + 1}/{config.max_attempts} for {func.__name__} after {delay:.2f}s",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt + 1,
                            "delay": delay,
                            "error": str(e)
                        }
                    )

                    if not await wait_or_stop(stop_event, delay):
                        logger.info(
                            f"Retry of {func.__name__} abandoned, shutdown requested",
                            extra={"function": func.__name__, "attempt": attempt + 1}
                        )
                        raise

            raise RuntimeError("Retry loop exited unexpectedly")

        return wrapper
    return decorator


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: Optional[RetryConfig] = None,
    stop_event: Optional[asyncio.Event] = None,
    **kwargs: Any
) -> T:
    """Retry a single call without decorating the function."""
    if config is None:
        config = RetryConfig()

    @with_retry(config, stop_event)
    async def wrapper() -> T:
        return await func(*args, **kwargs)

    return await wrapper()
