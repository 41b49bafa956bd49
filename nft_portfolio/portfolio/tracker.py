"""NFT portfolio session state for one wallet.

Holds the wallet's NFTs with paging, its marketplace listings (refreshed
progressively and on a timer), multi-selection for bulk listing, and a
short-lived cache of offers per NFT.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
import msgspec
import structlog

from nft_portfolio.core.errors import ListingError, NFTPortfolioError
from nft_portfolio.core.models import NFT, ListingRequest, MarketplaceListing
from nft_portfolio.moralis.client import MoralisClient
from nft_portfolio.moralis.parsing import parse_moralis_nfts
from nft_portfolio.nftgo.client import NFTGoClient
from nft_portfolio.nftgo.parsing import parse_nfts
from nft_portfolio.portfolio import matching
from nft_portfolio.portfolio.enrichment import merge_with_moralis
from nft_portfolio.portfolio.listings import ListingsService
from nft_portfolio.portfolio.pricing import BulkPricingFetcher
from nft_portfolio.utils.cache import TTLCache

log = structlog.get_logger()

LOAD_ERROR = "Failed to load your NFTs. Please try again later."


@dataclass
class PortfolioTracker:
    """Tracks one wallet's NFTs and listings.

    Features:
    - NFTGo NFTs cross-checked with Moralis (spam, metadata, fallback)
    - Cursor paging with a local page view
    - Progressive multi-marketplace listing refresh, single-flight
    - Periodic listing refresh in the background
    - Multi-selection and bulk listing
    - Offers cache per NFT
    """

    client: NFTGoClient
    wallet: str | None
    listings_service: ListingsService | None = None
    pricing: BulkPricingFetcher | None = None
    moralis: MoralisClient | None = None
    chain_id: int = 1
    items_per_page: int = 8
    refresh_cooldown: float = 5.0  # seconds
    listings_min_interval: float = 300.0  # seconds (5 min)
    auto_refresh_interval: float = 120.0  # seconds (2 min)
    offers_ttl: float = 300.0  # seconds (5 min)
    initial_page_size: int = 50
    load_more_size: int = 20
    clock: Callable[[], float] = time.monotonic

    nfts: list[NFT] = field(default_factory=list, init=False)
    displayed: list[NFT] = field(default_factory=list, init=False)
    listings: list[MarketplaceListing] = field(default_factory=list, init=False)
    current_page: int = field(default=1, init=False)
    next_cursor: str | None = field(default=None, init=False)
    is_loading: bool = field(default=False, init=False)
    is_loading_more: bool = field(default=False, init=False)
    error: str | None = field(default=None, init=False)

    _selected: dict[str, NFT] = field(default_factory=dict, init=False, repr=False)
    _offers: TTLCache[list[dict[str, Any]]] = field(init=False, repr=False)
    _last_refresh: float | None = field(default=None, init=False, repr=False)
    _last_listings_refresh: float | None = field(default=None, init=False, repr=False)
    _listings_task: asyncio.Task | None = field(default=None, init=False, repr=False)
    _stop: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)
    _task: asyncio.Task | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.listings_service is None:
            self.listings_service = ListingsService(self.client)
        if self.pricing is None:
            self.pricing = BulkPricingFetcher(self.client)
        self._offers = TTLCache(ttl=self.offers_ttl, name="offers", clock=self.clock)

        log.info(
            "portfolio_tracker.initialized",
            wallet=self.wallet,
            items_per_page=self.items_per_page,
            auto_refresh_interval=self.auto_refresh_interval,
        )

    # ========== NFTs & paging ==========

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(len(self.nfts) / self.items_per_page))

    @property
    def has_more(self) -> bool:
        return bool(self.next_cursor) or len(self.displayed) < len(self.nfts)

    def _page(self, page: int) -> list[NFT]:
        start = (page - 1) * self.items_per_page
        return self.nfts[start : start + self.items_per_page]

    def _with_selection(self, nfts: Sequence[NFT]) -> list[NFT]:
        marked = []
        for nft in nfts:
            selected = nft.id in self._selected
            marked.append(nft if nft.selected == selected else msgspec.structs.replace(nft, selected=selected))
        return marked

    async def refresh_nfts(self) -> bool:
        """Reload the wallet's first NFTs.

        Returns:
            False when skipped (already loading or within the cooldown)
        """
        if self.is_loading:
            log.debug("portfolio_tracker.refresh_skipped", reason="loading")
            return False

        now = self.clock()
        if self._last_refresh is not None and now - self._last_refresh < self.refresh_cooldown:
            log.debug("portfolio_tracker.refresh_skipped", reason="cooldown")
            return False
        self._last_refresh = now

        if not self.wallet:
            self.nfts = []
            self.displayed = []
            self.next_cursor = None
            return True

        self.is_loading = True
        self.error = None
        try:
            nfts, cursor = await self._load_first_page()

            self.nfts = self._with_selection(nfts)
            self.current_page = 1
            self.displayed = self._page(1)
            self.next_cursor = cursor
            log.info("portfolio_tracker.nfts_loaded", wallet=self.wallet, nfts=len(nfts), has_cursor=bool(cursor))

        except (NFTPortfolioError, httpx.HTTPError) as e:
            self.error = LOAD_ERROR
            log.error("portfolio_tracker.nfts_failed", wallet=self.wallet, error=str(e)[:200])
        finally:
            self.is_loading = False
        return True

    async def _load_first_page(self) -> tuple[list[NFT], str | None]:
        """NFTGo's first page, cross-checked with Moralis when configured.

        Moralis alone answers when NFTGo fails or returns nothing; its
        pages carry no NFTGo cursor.
        """
        try:
            payload = await self.client.get_address_nfts(self.wallet, limit=self.initial_page_size)
            nfts, cursor = parse_nfts(payload, self.wallet)
        except (NFTPortfolioError, httpx.HTTPError) as e:
            if self.moralis is None:
                raise
            log.warning("portfolio_tracker.nftgo_failed", wallet=self.wallet, error=str(e)[:200])
            return await self._load_moralis(), None

        if self.moralis is None:
            return nfts, cursor

        if not nfts:
            log.info("portfolio_tracker.moralis_fallback", wallet=self.wallet)
            try:
                return await self._load_moralis(), None
            except (NFTPortfolioError, httpx.HTTPError) as e:
                log.warning("portfolio_tracker.moralis_failed", wallet=self.wallet, error=str(e)[:200])
                return [], None

        try:
            moralis_nfts = await self._load_moralis(include_spam=True)
        except (NFTPortfolioError, httpx.HTTPError) as e:
            log.warning("portfolio_tracker.moralis_failed", wallet=self.wallet, error=str(e)[:200])
            return nfts, cursor
        return merge_with_moralis(nfts, moralis_nfts), cursor

    async def _load_moralis(self, include_spam: bool = False) -> list[NFT]:
        payload = await self.moralis.get_wallet_nfts(self.wallet, chain_id=self.chain_id)
        nfts, _ = parse_moralis_nfts(payload, self.wallet)
        if include_spam:
            return nfts
        return [nft for nft in nfts if not nft.is_spam]

    async def load_more(self) -> None:
        """Fetch the next cursor page and append it."""
        if self.is_loading_more or not self.next_cursor or not self.wallet:
            return

        self.is_loading_more = True
        try:
            payload = await self.client.get_address_nfts(
                self.wallet,
                limit=self.load_more_size,
                cursor=self.next_cursor,
            )
            more, cursor = parse_nfts(payload, self.wallet)

            if more:
                more = self._with_selection(more)
                self.next_cursor = cursor
                self.nfts = [*self.nfts, *more]
                self.displayed = [*self.displayed, *more]
                self.current_page += 1
            else:
                self.next_cursor = None

        except (NFTPortfolioError, httpx.HTTPError) as e:
            log.error("portfolio_tracker.load_more_failed", wallet=self.wallet, error=str(e)[:200])
            # Fall back to local pagination
            if len(self.displayed) < len(self.nfts):
                next_page = self.current_page + 1
                self.displayed = [*self.displayed, *self._page(next_page)]
                self.current_page = next_page
        finally:
            self.is_loading_more = False

    def change_page(self, page: int) -> None:
        if page == self.current_page or self.is_loading_more:
            return
        if page < 1 or page > self.total_pages:
            log.warning("portfolio_tracker.invalid_page", page=page, total_pages=self.total_pages)
            return
        self.displayed = self._page(page)
        self.current_page = page

    # ========== Listings ==========

    async def refresh_listings(self, force: bool = False) -> list[MarketplaceListing]:
        """Refresh the wallet's listings across marketplaces.

        Concurrent callers share one refresh. Without ``force`` a refresh
        happens at most once per ``listings_min_interval``.
        """
        if self._listings_task is not None and not self._listings_task.done():
            log.debug("portfolio_tracker.listings_joined")
            return await asyncio.shield(self._listings_task)

        now = self.clock()
        if (
            not force
            and self._last_listings_refresh is not None
            and now - self._last_listings_refresh < self.listings_min_interval
        ):
            log.debug("portfolio_tracker.listings_skipped", reason="min_interval")
            return self.listings

        self._last_listings_refresh = now
        self._listings_task = asyncio.create_task(
            self._refresh_listings(force),
            name=f"listings_refresh_{self.wallet}",
        )
        return await asyncio.shield(self._listings_task)

    async def _refresh_listings(self, force: bool) -> list[MarketplaceListing]:
        if not self.wallet:
            self.listings = []
            return self.listings

        def on_progress(
            marketplace: str,
            listings: list[MarketplaceListing],
            is_last: bool,
            all_listings: list[MarketplaceListing],
        ) -> None:
            self.listings = matching.attach_nfts(all_listings, self.nfts)
            log.debug(
                "portfolio_tracker.listings_progress",
                marketplace=marketplace,
                listings=len(listings),
                total=len(all_listings),
                complete=is_last,
            )

        try:
            final = await self.listings_service.get_all_orders_by_maker_progressive(
                self.wallet,
                on_progress,
                force_refresh=force,
            )
            self.listings = matching.attach_nfts(final, self.nfts)
            log.info("portfolio_tracker.listings_refreshed", wallet=self.wallet, listings=len(final))
        except (NFTPortfolioError, httpx.HTTPError) as e:
            log.error("portfolio_tracker.listings_failed", wallet=self.wallet, error=str(e)[:200])
            self.listings = []
        return self.listings

    def clear_listings_cache(self) -> None:
        self.listings_service.clear_cache(self.wallet)

    def listings_for(self, nft: NFT) -> list[MarketplaceListing]:
        return matching.listings_for_nft(self.listings, nft)

    def listing_info(self, nft: NFT) -> MarketplaceListing | None:
        return matching.listing_info(self.listings, nft)

    def listed_marketplaces(self, nft: NFT) -> list[str]:
        return matching.listed_marketplaces(self.listings, nft)

    def is_listed(self, nft: NFT) -> bool:
        return matching.is_listed(self.listings, nft)

    # ========== Selection ==========

    @property
    def selected(self) -> list[NFT]:
        return list(self._selected.values())

    @property
    def has_selection(self) -> bool:
        return bool(self._selected)

    def _replace(self, updated: dict[str, NFT]) -> None:
        self.nfts = [updated.get(nft.id, nft) for nft in self.nfts]
        self.displayed = [updated.get(nft.id, nft) for nft in self.displayed]

    def toggle_selection(self, nft: NFT) -> NFT:
        """Flip ``nft``'s selection; returns the updated copy."""
        if nft.id in self._selected:
            del self._selected[nft.id]
            updated = msgspec.structs.replace(nft, selected=False)
        else:
            updated = msgspec.structs.replace(nft, selected=True)
            self._selected[nft.id] = updated

        self._replace({nft.id: updated})
        return updated

    def select_all(self) -> None:
        """Select exactly the NFTs on the displayed page."""
        updated = {nft.id: msgspec.structs.replace(nft, selected=True) for nft in self.displayed}
        previous = {
            nft_id: msgspec.structs.replace(nft, selected=False)
            for nft_id, nft in self._selected.items()
            if nft_id not in updated
        }
        self._selected = dict(updated)
        self._replace({**previous, **updated})

    def deselect_all(self) -> None:
        self._selected.clear()
        self.nfts = [msgspec.structs.replace(nft, selected=False) if nft.selected else nft for nft in self.nfts]
        self.displayed = [msgspec.structs.replace(nft, selected=False) if nft.selected else nft for nft in self.displayed]

    async def create_bulk_listing(
        self,
        price: str,
        marketplaces: Sequence[str],
        duration_days: int = 7,
    ) -> dict[str, Any]:
        """List every selected NFT at ``price`` ETH.

        Raises:
            ListingError: No wallet, nothing selected, or NFTGo refused
        """
        if not self.wallet:
            raise ListingError("Wallet not connected")
        if not self._selected:
            raise ListingError("No NFTs selected for listing")

        requests = [ListingRequest.for_nft(nft, price) for nft in self._selected.values()]
        return await self.listings_service.create_listings(
            self.wallet,
            requests,
            marketplaces,
            duration_days,
        )

    # ========== Offers ==========

    async def fetch_offers(self, nft: NFT) -> list[dict[str, Any]]:
        offers = await self.listings_service.get_offers_for_nft(nft.contract_address, nft.token_id)
        self._offers.set(nft.key, offers)
        return offers

    def bids_for(self, nft: NFT) -> list[dict[str, Any]]:
        """Cached offers for ``nft`` younger than ``offers_ttl``."""
        return self._offers.get(nft.key) or []

    def has_offers(self, nft: NFT) -> bool:
        return bool(self.bids_for(nft))

    def top_offer_for(self, nft: NFT) -> dict[str, Any] | None:
        return matching.top_offer(self.bids_for(nft))

    # ========== Background refresh ==========

    def start(self) -> None:
        """Start refreshing listings every ``auto_refresh_interval`` seconds."""
        if self._task is not None and not self._task.done():
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._auto_refresh_loop(), name=f"listings_auto_refresh_{self.wallet}")
        log.info("portfolio_tracker.started", wallet=self.wallet)

    async def stop(self) -> None:
        """Stop the background refresh gracefully."""
        log.info("portfolio_tracker.stopping", wallet=self.wallet)
        self._stop.set()

        tasks = [t for t in (self._task, self._listings_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None

    async def _auto_refresh_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.auto_refresh_interval)
            except TimeoutError:
                await self.refresh_listings()
            except asyncio.CancelledError:
                log.debug("portfolio_tracker.auto_refresh_cancelled", wallet=self.wallet)
                break
