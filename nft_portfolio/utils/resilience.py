"""Retry policies for vendor calls.

Implements:
- Fixed or exponential backoff with optional jitter
- Retry predicates (which failures are worth another attempt)
- Function and decorator forms
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import wraps
from typing import ParamSpec, TypeVar

import httpx
import structlog

from nft_portfolio.core.errors import NFTGoAPIError, RateLimitExceededError

log = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


def is_server_error(exc: BaseException) -> bool:
    """NFTGo answered 500, or the request never got an answer."""
    if isinstance(exc, NFTGoAPIError):
        return exc.status_code == 500
    return isinstance(exc, httpx.TransportError)


def is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, RateLimitExceededError)


def _retry_everything(exc: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry, how long to wait, and on which errors.

    Attributes:
        max_retries: Retries after the first attempt (total = 1 + max_retries)
        base_delay: Delay before the first retry in seconds
        exponential_base: Delay multiplier per retry (1.0 = fixed delay)
        max_delay: Upper bound for a single delay
        jitter: Randomize each delay by ±25%
        retry_on: Predicate selecting retryable exceptions
    """

    max_retries: int = 2
    base_delay: float = 1.0
    exponential_base: float = 1.0
    max_delay: float = 60.0
    jitter: bool = False
    retry_on: Callable[[BaseException], bool] = field(default=_retry_everything)

    def delay_for(self, retry: int) -> float:
        """Delay before retry number ``retry`` (1-based)."""
        delay = self.base_delay * (self.exponential_base ** (retry - 1))
        if self.jitter:
            delay *= random.uniform(0.75, 1.25)
        return min(delay, self.max_delay)

    @classmethod
    def fixed(
        cls,
        max_retries: int,
        delay: float,
        retry_on: Callable[[BaseException], bool] = _retry_everything,
    ) -> "RetryPolicy":
        return cls(max_retries=max_retries, base_delay=delay, retry_on=retry_on)

    @classmethod
    def exponential(
        cls,
        max_retries: int,
        initial_delay: float,
        retry_on: Callable[[BaseException], bool] = _retry_everything,
    ) -> "RetryPolicy":
        return cls(
            max_retries=max_retries,
            base_delay=initial_delay,
            exponential_base=2.0,
            retry_on=retry_on,
        )


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    name: str | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``func()`` under ``policy``.

    Raises:
        The last exception once retries are exhausted, or the first
        non-retryable one immediately.
    """
    name = name or getattr(func, "__name__", "call")
    attempts = policy.max_retries + 1

    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except Exception as e:
            if not policy.retry_on(e):
                raise

            if attempt == attempts:
                log.error(
                    "retry.exhausted",
                    function=name,
                    attempts=attempts,
                    error=str(e),
                )
                raise

            delay = policy.delay_for(attempt)
            log.warning(
                "retry.attempt",
                function=name,
                attempt=attempt + 1,
                max_attempts=attempts,
                delay=delay,
                error=str(e),
            )
            await sleep(delay)

    raise AssertionError("unreachable")


def with_retry(policy: RetryPolicy) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator form of ``call_with_retry``.

    Example:
        >>> @with_retry(RetryPolicy.fixed(2, 1.0, retry_on=is_server_error))
        ... async def fetch_pricing():
        ...     return await client.bulk_pricing(payload)
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await call_with_retry(lambda: func(*args, **kwargs), policy, name=func.__name__)

        return wrapper

    return decorator
