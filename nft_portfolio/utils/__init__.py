"""Utility modules for the proxy service and portfolio layer.

Provides:
- Response caching and in-flight request deduplication
- Rate limiting (sliding window, fixed window, per key, cooldown)
- Retry policies
- IPFS/media helpers
"""

from nft_portfolio.utils.cache import InFlightRequests, TTLCache
from nft_portfolio.utils.rate_limiter import (
    Cooldown,
    FixedWindowRateLimiter,
    KeyedRateLimiter,
    SlidingWindowRateLimiter,
)
from nft_portfolio.utils.resilience import (
    RetryPolicy,
    call_with_retry,
    is_rate_limited,
    is_server_error,
    with_retry,
)

__all__ = [
    "Cooldown",
    "FixedWindowRateLimiter",
    "InFlightRequests",
    "KeyedRateLimiter",
    "RetryPolicy",
    "SlidingWindowRateLimiter",
    "TTLCache",
    "call_with_retry",
    "is_rate_limited",
    "is_server_error",
    "with_retry",
]
