"""Batched bulk pricing with request coalescing and cooldown."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeAlias

import httpx
import structlog

from nft_portfolio.core.errors import NFTGoAPIError
from nft_portfolio.nftgo.client import NFTGoClient
from nft_portfolio.utils.cache import InFlightRequests
from nft_portfolio.utils.rate_limiter import Cooldown
from nft_portfolio.utils.resilience import RetryPolicy, call_with_retry, is_server_error

log = structlog.get_logger()

MAX_BATCH_SIZE = 50

PricingParams: TypeAlias = Sequence[dict[str, str]]


def batch_key(batch: PricingParams, with_weights: bool = False) -> str:
    key = "|".join(f"{p['contract_address']}:{p['token_id']}" for p in batch)
    return f"{key}#weights" if with_weights else key


class BulkPricingFetcher:
    """
    Fetch NFTGo price estimates for many NFTs.

    Large requests are split into batches fetched one after another.
    Identical batches requested concurrently share one upstream call, and
    consecutive upstream calls are kept ``cooldown`` seconds apart.

    Example:
        >>> fetcher = BulkPricingFetcher(client)
        >>> result = await fetcher.get_bulk_pricing(
        ...     [{"contract_address": "0xabc", "token_id": "1"}]
        ... )
    """

    def __init__(
        self,
        client: NFTGoClient,
        batch_size: int = MAX_BATCH_SIZE,
        cooldown: float = 2.0,
        retry_policy: RetryPolicy | None = None,
        linger: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] | None = None,
    ):
        self.client = client
        self.batch_size = min(batch_size, MAX_BATCH_SIZE)
        self.cooldown_interval = cooldown
        self.retry_policy = retry_policy or RetryPolicy.fixed(2, 1.0, retry_on=is_server_error)
        self._sleep = sleep
        self._inflight = InFlightRequests(linger=linger, name="bulk_pricing")
        if clock is None:
            self._cooldown = Cooldown(cooldown, sleep=sleep)
        else:
            self._cooldown = Cooldown(cooldown, clock=clock, sleep=sleep)

    async def get_bulk_pricing(
        self,
        nfts: PricingParams,
        with_weights: bool = False,
        batch_size: int | None = None,
    ) -> dict[str, Any]:
        """
        Price estimates for ``nfts``.

        Args:
            nfts: ``[{"contract_address": ..., "token_id": ...}]``
            with_weights: Include trait weights
            batch_size: Override the batch size (capped at 50)

        Returns:
            A single batch's payload, or ``{"items": [...]}`` combining batches
        """
        if not nfts:
            return {"items": []}

        size = min(batch_size or self.batch_size, MAX_BATCH_SIZE)
        if len(nfts) <= size:
            return await self._fetch_batch(nfts, with_weights)

        batches = [nfts[i : i + size] for i in range(0, len(nfts), size)]
        log.info("pricing.batched", nfts=len(nfts), batches=len(batches))

        items: list[Any] = []
        for index, batch in enumerate(batches):
            result = await self._fetch_batch(batch, with_weights)
            if isinstance(result, dict) and isinstance(result.get("items"), list):
                items.extend(result["items"])

            if index < len(batches) - 1:
                await self._sleep(self.cooldown_interval)

        return {"items": items}

    async def _fetch_batch(self, batch: PricingParams, with_weights: bool) -> Any:
        key = batch_key(batch, with_weights)

        async def fetch() -> Any:
            await self._cooldown.wait()
            payload = {"with_weights": with_weights, "params": list(batch)}
            return await call_with_retry(
                lambda: self.client.bulk_pricing(payload),
                self.retry_policy,
                name="pricing.batch",
                sleep=self._sleep,
            )

        return await self._inflight.run(key, fetch)

    async def get_price_estimate(self, contract: str, token_id: str) -> float:
        """Estimated price in ETH, 0 when unavailable."""
        try:
            data = await self.client.get_price_estimate(contract, token_id)
        except (NFTGoAPIError, httpx.HTTPError) as e:
            log.warning("pricing.estimate_failed", contract=contract, token_id=token_id, error=str(e))
            return 0.0

        price = (data.get("data") or {}).get("price") if isinstance(data, dict) else None
        try:
            return float(price) if price else 0.0
        except (TypeError, ValueError):
            return 0.0
