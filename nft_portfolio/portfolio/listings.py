"""
Wallet listings across marketplaces.

Fetches a wallet's sell orders per orderbook, caches them for ten minutes
(optionally persisted to a JSON file) and wraps the trade endpoints used
to create, cancel and fulfill orders.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any, TypeAlias

import httpx
import msgspec
import structlog

from nft_portfolio.core.errors import InvalidRequestError, ListingError, NFTPortfolioError
from nft_portfolio.core.models import ListingRequest, MarketplaceListing
from nft_portfolio.nftgo.client import NFTGoClient
from nft_portfolio.nftgo.orders import (
    ORDERBOOKS,
    build_cancel_payload,
    build_listing_params,
    validate_actions,
)
from nft_portfolio.nftgo.parsing import parse_listings
from nft_portfolio.utils.cache import TTLCache
from nft_portfolio.utils.resilience import RetryPolicy, call_with_retry, is_rate_limited

log = structlog.get_logger()

CACHE_VERSION = "1.0"

ProgressCallback: TypeAlias = Callable[
    [str, list[MarketplaceListing], bool, list[MarketplaceListing]],
    Awaitable[None] | None,
]


class _CachedListings(msgspec.Struct):
    data: list[MarketplaceListing]
    timestamp: float


class _CacheFile(msgspec.Struct):
    version: str
    timestamp: float
    data: dict[str, _CachedListings]


def dedupe_by_id(listings: Sequence[MarketplaceListing]) -> list[MarketplaceListing]:
    """Drop listings whose id was already seen (first wins)."""
    seen: set[str] = set()
    unique = []
    for listing in listings:
        if listing.id in seen:
            continue
        seen.add(listing.id)
        unique.append(listing)
    return unique


class ListingsService:
    """
    Listings created by a wallet, per orderbook, with caching.

    Example:
        >>> service = ListingsService(client, cache_path=Path(".cache/listings.json"))
        >>> listings = await service.get_all_orders_by_maker("0xabc...")
    """

    def __init__(
        self,
        client: NFTGoClient,
        cache_ttl: float = 600.0,
        retry_count: int = 3,
        initial_delay: float = 1.0,
        marketplace_delay: float = 0.5,
        cache_path: Path | str | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize listings service.

        Args:
            client: NFTGo client
            cache_ttl: Seconds cached listings stay fresh
            retry_count: Retries when NFTGo answers 429
            initial_delay: First backoff delay, doubled on each retry
            marketplace_delay: Pause between orderbooks when aggregating
            cache_path: JSON file the cache is persisted to
            clock: Wall-clock time source
            sleep: Async sleep
        """
        self.client = client
        self.marketplace_delay = marketplace_delay
        self.retry_policy = RetryPolicy.exponential(retry_count, initial_delay, retry_on=is_rate_limited)
        self.cache_path = Path(cache_path) if cache_path else None
        self.cache: TTLCache[list[MarketplaceListing]] = TTLCache(ttl=cache_ttl, name="listings", clock=clock)
        self._clock = clock
        self._sleep = sleep

        if self.cache_path is not None:
            self._load_cache()

    # ========== Cache persistence ==========

    def _load_cache(self) -> None:
        assert self.cache_path is not None
        if not self.cache_path.exists():
            return

        try:
            stored = msgspec.json.decode(self.cache_path.read_bytes(), type=_CacheFile)
        except (OSError, msgspec.DecodeError) as e:
            log.warning("listings.cache_load_failed", path=str(self.cache_path), error=str(e))
            return

        if stored.version != CACHE_VERSION or self._clock() - stored.timestamp >= self.cache.ttl:
            log.info("listings.cache_stale", path=str(self.cache_path), version=stored.version)
            return

        restored = self.cache.restore(
            {key: {"data": entry.data, "timestamp": entry.timestamp} for key, entry in stored.data.items()}
        )
        log.info("listings.cache_loaded", path=str(self.cache_path), entries=restored)

    def _save_cache(self) -> None:
        if self.cache_path is None:
            return

        payload = {
            "version": CACHE_VERSION,
            "timestamp": self._clock(),
            "data": self.cache.snapshot(),
        }
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.cache_path.write_bytes(msgspec.json.encode(payload))
        except OSError as e:
            log.warning("listings.cache_save_failed", path=str(self.cache_path), error=str(e))

    def clear_cache(self, wallet: str | None = None) -> None:
        """Forget cached listings for one wallet, or for everyone."""
        if wallet:
            removed = self.cache.delete_prefix(f"{wallet.lower()}-")
            log.info("listings.cache_cleared", wallet=wallet.lower(), entries=removed)
        else:
            self.cache.clear()
            log.info("listings.cache_cleared", wallet="all")
        self._save_cache()

    @staticmethod
    def cache_key(wallet: str, orderbook: str | None = None) -> str:
        return f"{wallet.lower()}-{orderbook or 'all'}"

    # ========== Reading listings ==========

    async def get_orders_by_maker(
        self,
        wallet: str,
        orderbook: str | None = None,
        force_refresh: bool = False,
    ) -> list[MarketplaceListing]:
        """
        Listings created by ``wallet``, optionally on one orderbook.

        Returns:
            Parsed listings; ``[]`` when NFTGo keeps failing
        """
        key = self.cache_key(wallet, orderbook)
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                log.debug("listings.cache_hit", key=key, listings=len(cached))
                return cached

        try:
            payload = await call_with_retry(
                lambda: self.client.get_orders_by_maker(wallet, orderbook=orderbook),
                self.retry_policy,
                name="listings.get_orders_by_maker",
                sleep=self._sleep,
            )
        except (NFTPortfolioError, httpx.HTTPError) as e:
            log.error("listings.fetch_failed", wallet=wallet, orderbook=orderbook or "all", error=str(e))
            return []

        listings = parse_listings(payload)
        log.info("listings.fetched", wallet=wallet, orderbook=orderbook or "all", listings=len(listings))

        self.cache.set(key, listings)
        self._save_cache()
        return listings

    async def get_all_orders_by_maker(
        self,
        wallet: str,
        force_refresh: bool = False,
    ) -> list[MarketplaceListing]:
        """Listings from every orderbook, deduplicated by id."""
        collected: list[MarketplaceListing] = []
        for index, orderbook in enumerate(ORDERBOOKS):
            try:
                collected.extend(await self.get_orders_by_maker(wallet, orderbook, force_refresh))
            except (NFTPortfolioError, httpx.HTTPError) as e:
                log.error("listings.orderbook_failed", orderbook=orderbook, error=str(e))

            if index < len(ORDERBOOKS) - 1:
                await self._sleep(self.marketplace_delay)

        return dedupe_by_id(collected)

    async def get_all_orders_by_maker_progressive(
        self,
        wallet: str,
        on_progress: ProgressCallback,
        force_refresh: bool = False,
    ) -> list[MarketplaceListing]:
        """
        Listings from every orderbook, reported as each one completes.

        Cached results are reported first under the ``"cache"`` marketplace.
        Each orderbook's fresh results then replace whatever that orderbook
        contributed before.

        Args:
            wallet: Maker address
            on_progress: ``(marketplace, listings, is_last, all_listings)``,
                sync or async
            force_refresh: Skip the cache entirely

        Returns:
            Final deduplicated listings
        """
        running: dict[str, MarketplaceListing] = {}
        source: dict[str, str] = {}

        if not force_refresh:
            for orderbook in ORDERBOOKS:
                cached = self.cache.get(self.cache_key(wallet, orderbook))
                for listing in cached or []:
                    if listing.id not in running:
                        running[listing.id] = listing
                        source[listing.id] = orderbook

            if running:
                snapshot = list(running.values())
                await _notify(on_progress, "cache", snapshot, False, snapshot)

        for index, orderbook in enumerate(ORDERBOOKS):
            is_last = index == len(ORDERBOOKS) - 1
            try:
                fresh = await self.get_orders_by_maker(wallet, orderbook, force_refresh)
            except (NFTPortfolioError, httpx.HTTPError) as e:
                log.error("listings.orderbook_failed", orderbook=orderbook, error=str(e))
                await _notify(on_progress, orderbook, [], is_last, list(running.values()))
                continue

            for listing_id in [lid for lid, ob in source.items() if ob == orderbook]:
                del running[listing_id]
                del source[listing_id]
            for listing in fresh:
                if listing.id not in running:
                    running[listing.id] = listing
                    source[listing.id] = orderbook

            await _notify(on_progress, orderbook, fresh, is_last, list(running.values()))

            if not is_last:
                await self._sleep(self.marketplace_delay)

        return list(running.values())

    # ========== Trading ==========

    async def create_listings(
        self,
        wallet: str,
        requests: Sequence[ListingRequest],
        marketplaces: Sequence[str],
        duration_days: int = 7,
    ) -> dict[str, Any]:
        """
        Create listing actions for ``requests`` on every marketplace.

        Returns:
            NFTGo ``data`` (actions for the wallet to sign)

        Raises:
            ListingError: NFTGo did not answer SUCCESS
        """
        payload = build_listing_params(wallet, requests, marketplaces, duration_days, now=self._clock())
        log.info(
            "listings.create",
            wallet=wallet,
            nfts=len(requests),
            marketplaces=list(marketplaces),
            params=len(payload["params"]),
        )

        response = await self.client.create_listings(payload)
        if response.get("code") == "SUCCESS" and response.get("data"):
            validate_actions(response["data"])
            return response["data"]

        message = response.get("msg") or "Unknown error from NFTGo create listings API"
        raise ListingError(f"NFTGo API Error: {message}", details=response)

    async def cancel_listings(self, wallet: str, order_ids: Sequence[str]) -> dict[str, Any]:
        """Cancel orders, then drop the wallet's cached listings."""
        payload = build_cancel_payload(wallet, order_ids)
        log.info("listings.cancel", wallet=wallet, orders=len(payload["orders"]))

        response = await self.client.cancel_orders(payload)
        self.clear_cache(wallet)
        return response

    async def check_post_order_results(
        self,
        request_ids: Sequence[str],
        retry_count: int = 2,
        initial_delay: float = 1.0,
    ) -> dict[str, Any]:
        """Poll post-order results; failures come back as ``{"code": "ERROR"}``."""
        policy = RetryPolicy.exponential(retry_count, initial_delay, retry_on=is_rate_limited)
        try:
            data = await call_with_retry(
                lambda: self.client.check_post_order_results({"request_ids": list(request_ids)}),
                policy,
                name="listings.check_post_order_results",
                sleep=self._sleep,
            )
        except (NFTPortfolioError, httpx.HTTPError) as e:
            log.error("listings.post_order_check_failed", error=str(e))
            return {"code": "ERROR", "msg": str(e), "data": None}

        if not isinstance(data, dict) or data.get("code") != "SUCCESS":
            log.warning("listings.post_order_check_invalid", response=data)
            return {"code": "ERROR", "msg": "Invalid response format", "data": None}

        results = (data.get("data") or {}).get("post_order_results")
        if isinstance(results, list):
            failed = [r for r in results if isinstance(r, dict) and r.get("status") == "failed"]
            if failed:
                log.warning("listings.post_orders_failed", failed=len(failed), total=len(results))
        return data

    async def get_offers_for_nft(
        self,
        contract: str,
        token_id: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {"contract_address": contract}
        if token_id:
            payload["token_id"] = token_id

        try:
            data = await self.client.get_offers_feed_by_nft(payload, limit=limit)
        except (NFTPortfolioError, httpx.HTTPError) as e:
            log.error("listings.offers_failed", contract=contract, token_id=token_id, error=str(e))
            return []

        offers = (data.get("data") or {}).get("offers") if isinstance(data, dict) else None
        return offers if isinstance(offers, list) else []

    async def fulfill_offers(self, wallet: str, order_ids: Sequence[str]) -> dict[str, Any]:
        """Accept offers; returns the actions for the wallet to sign."""
        if not wallet or not order_ids:
            raise InvalidRequestError("Invalid parameters: wallet address and orders are required")

        payload = {
            "caller_address": wallet,
            "orders": [{"order_id": order_id} for order_id in order_ids],
        }
        response = await self.client.fulfill_offers(payload)
        if response.get("code") == "SUCCESS" and response.get("data"):
            validate_actions(response["data"])
            return response["data"]

        message = response.get("msg") or "Unknown error from NFTGo fulfill offers API"
        raise ListingError(f"NFTGo API Error: {message}", details=response)


async def _notify(callback: ProgressCallback, *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
