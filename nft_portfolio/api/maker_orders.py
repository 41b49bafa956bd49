"""Orders-by-maker proxy with a per-wallet rate limit."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

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
from nft_portfolio.utils.rate_limiter import KeyedRateLimiter

log = structlog.get_logger()


class MakerOrdersProxy:
    """Serves a wallet's orders from cache, else from NFTGo under a per-wallet limit."""

    def __init__(
        self,
        client: NFTGoClient | None,
        cache_ttl: float = 300.0,
        rate_limiter: KeyedRateLimiter | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.cache: TTLCache[Any] = TTLCache(ttl=cache_ttl, name="maker_orders", clock=clock)
        self.rate_limiter = rate_limiter or KeyedRateLimiter(
            max_requests=5,
            time_window=60.0,
            name="maker_orders",
        )

    @classmethod
    def from_settings(cls, settings: NFTGoSettings, client: NFTGoClient | None) -> MakerOrdersProxy:
        return cls(
            client,
            cache_ttl=settings.maker_orders_cache_ttl,
            rate_limiter=KeyedRateLimiter(
                max_requests=settings.maker_orders_rate_max,
                time_window=settings.maker_orders_rate_window,
                name="maker_orders",
            ),
        )

    async def handle(
        self,
        maker: str,
        orderbook: str | None = None,
        limit: int = 100,
        order_type: str = "listing",
        force_refresh: bool = False,
    ) -> Any:
        if self.client is None:
            raise ConfigurationError("API key configuration error")
        if not maker:
            raise InvalidRequestError("Invalid request: maker address is required")

        wallet = maker.lower()
        key = f"{wallet}-{orderbook or 'all'}-{limit}"

        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                log.info("maker_orders.cache_hit", wallet=wallet, orderbook=orderbook or "all")
                return cached
        else:
            log.info("maker_orders.force_refresh", wallet=wallet)

        if not self.rate_limiter.try_acquire(wallet):
            raise RateLimitExceededError("Rate limit exceeded. Please try again later.")

        log.info(
            "maker_orders.fetch",
            wallet=wallet,
            orderbook=orderbook or "all",
            request=self.rate_limiter.usage(wallet),
            max_requests=self.rate_limiter.max_requests,
        )

        try:
            data = await self.client.get_orders_by_maker(
                maker,
                order_type=order_type,
                limit=limit,
                orderbook=orderbook,
            )
        except RateLimitExceededError as e:
            raise RateLimitExceededError("NFTGo API rate limit exceeded. Please try again later.") from e
        except NFTGoAPIError as e:
            raise NFTGoAPIError(e.status_code) from e

        self.cache.set(key, data)
        return data
