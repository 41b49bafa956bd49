"""Bulk pricing proxy: response cache, batch cap, global rate limit and retry."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import httpx
import structlog

from nft_portfolio.config import NFTGoSettings
from nft_portfolio.core.errors import (
    ConfigurationError,
    InvalidRequestError,
    NFTGoAPIError,
    RateLimitExceededError,
)
from nft_portfolio.nftgo.client import NFTGoClient
from nft_portfolio.utils.cache import TTLCache
from nft_portfolio.utils.rate_limiter import FixedWindowRateLimiter
from nft_portfolio.utils.resilience import RetryPolicy, call_with_retry, is_server_error

log = structlog.get_logger()


def pricing_cache_key(params: Sequence[dict[str, Any]], with_weights: bool = False) -> str:
    """Order-independent key for a set of ``{contract_address, token_id}`` params."""
    pairs = sorted(f"{p.get('contract_address')}:{p.get('token_id')}" for p in params)
    key = "|".join(pairs)
    return f"{key}#weights" if with_weights else key


class BulkPricingProxy:
    """
    Forwards bulk-pricing requests to NFTGo.

    Steps, in order: serve a live cached answer, reject oversized batches,
    apply the global fixed-window limit, forward with retry, cache.
    """

    def __init__(
        self,
        client: NFTGoClient | None,
        max_batch: int = 50,
        cache_ttl: float = 300.0,
        max_entries: int = 20,
        keep_entries: int = 10,
        rate_limiter: FixedWindowRateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.max_batch = max_batch
        self.max_entries = max_entries
        self.keep_entries = keep_entries
        self.cache: TTLCache[Any] = TTLCache(ttl=cache_ttl, name="bulk_pricing", clock=clock)
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            max_requests=2,
            time_window=10.0,
            name="bulk_pricing",
        )
        self.retry_policy = retry_policy or RetryPolicy.fixed(2, 1.0, retry_on=is_server_error)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: NFTGoSettings, client: NFTGoClient | None) -> BulkPricingProxy:
        return cls(
            client,
            max_batch=settings.bulk_pricing_max_batch,
            cache_ttl=settings.bulk_pricing_cache_ttl,
            max_entries=settings.response_cache_max_entries,
            keep_entries=settings.response_cache_keep_entries,
            rate_limiter=FixedWindowRateLimiter(
                max_requests=settings.bulk_pricing_rate_max,
                time_window=settings.bulk_pricing_rate_window,
                name="bulk_pricing",
            ),
            retry_policy=RetryPolicy.fixed(
                settings.upstream_max_retries,
                settings.upstream_retry_delay,
                retry_on=is_server_error,
            ),
        )

    async def handle(self, params: list[dict[str, Any]], with_weights: bool = False) -> Any:
        """
        Price a batch of NFTs.

        Raises:
            ConfigurationError: No API key configured
            InvalidRequestError: More than ``max_batch`` params
            RateLimitExceededError: Local window exhausted
            NFTGoAPIError: Upstream failure after retries
        """
        if self.client is None:
            raise ConfigurationError("API key configuration error")

        key = pricing_cache_key(params, with_weights)
        cached = self.cache.get(key)
        if cached is not None:
            log.info("bulk_pricing.cache_hit", items=len(params))
            return cached

        if len(params) > self.max_batch:
            log.info("bulk_pricing.batch_too_large", items=len(params), max_batch=self.max_batch)
            raise InvalidRequestError(
                f"Batch size exceeds maximum of {self.max_batch} NFTs. "
                "Please split your request into smaller batches."
            )

        if not self.rate_limiter.try_acquire():
            raise RateLimitExceededError(details='{"msg": "Rate Limit Exceeded"}')

        payload = {"params": params, "with_weights": with_weights}
        log.info("bulk_pricing.forward", items=len(params))

        try:
            data = await call_with_retry(
                lambda: self.client.bulk_pricing(payload),
                self.retry_policy,
                name="bulk_pricing",
                sleep=self._sleep,
            )
        except httpx.TransportError as e:
            log.error("bulk_pricing.retries_exhausted", error=str(e))
            raise NFTGoAPIError(500, details="All retry attempts failed") from e

        self.cache.set(key, data)
        self.cache.prune(self.max_entries, self.keep_entries)
        return data
