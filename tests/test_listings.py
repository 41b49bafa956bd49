"""Tests for the wallet listings service."""

import json
from collections.abc import Callable
from typing import TypeAlias
from pathlib import Path

import httpx
import pytest

from nft_portfolio.core.errors import InvalidRequestError, ListingError
from nft_portfolio.core.models import ListingRequest, MarketplaceListing
from nft_portfolio.nftgo.client import NFTGoClient
from nft_portfolio.nftgo.parsing import parse_listing
from nft_portfolio.portfolio.listings import ListingsService, dedupe_by_id
from tests.conftest import FakeClock, RecordingSleep, listing_dto, listings_payload

ClientFactory: TypeAlias = Callable[[Callable[[httpx.Request], httpx.Response]], NFTGoClient]

WALLET = "0xWallet"


def orderbook_handler(by_orderbook: dict[str, list[dict]], calls: list[str] | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        orderbook = request.url.params.get("order_book_name", "all")
        if calls is not None:
            calls.append(orderbook)
        return httpx.Response(200, json=listings_payload(*by_orderbook.get(orderbook, [])))

    return handler


def service(client: NFTGoClient, clock: FakeClock, sleep: RecordingSleep, **kwargs) -> ListingsService:
    return ListingsService(client, clock=clock, sleep=sleep, **kwargs)


def test_dedupe_by_id_keeps_first() -> None:
    a = parse_listing(listing_dto("a", price=1.0))
    a_again = parse_listing(listing_dto("a", price=2.0))
    b = parse_listing(listing_dto("b"))

    assert dedupe_by_id([a, b, a_again]) == [a, b]


@pytest.mark.asyncio
async def test_get_orders_by_maker_caches(make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep) -> None:
    calls: list[str] = []
    listings = service(make_client(orderbook_handler({"opensea": [listing_dto("o1")]}, calls)), clock, sleep)

    first = await listings.get_orders_by_maker(WALLET, "opensea")
    second = await listings.get_orders_by_maker(WALLET.lower(), "opensea")

    assert [listing.id for listing in first] == ["o1"]
    assert second == first
    assert calls == ["opensea"]
    assert "0xwallet-opensea" in listings.cache

    await listings.get_orders_by_maker(WALLET, "opensea", force_refresh=True)
    clock.advance(600)
    await listings.get_orders_by_maker(WALLET, "opensea")
    assert calls == ["opensea"] * 3


@pytest.mark.asyncio
async def test_get_orders_by_maker_backs_off_on_429(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep
) -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts <= 2:
            return httpx.Response(429, text="slow down")
        return httpx.Response(200, json=listings_payload(listing_dto("o1")))

    listings = service(make_client(handler), clock, sleep)

    result = await listings.get_orders_by_maker(WALLET)

    assert len(result) == 1
    assert sleep.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_get_orders_by_maker_returns_empty_on_failure(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep
) -> None:
    listings = service(make_client(lambda r: httpx.Response(500, text="boom")), clock, sleep)

    assert await listings.get_orders_by_maker(WALLET) == []
    assert len(listings.cache) == 0
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_get_orders_by_maker_gives_up_after_retries(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep
) -> None:
    listings = service(make_client(lambda r: httpx.Response(429)), clock, sleep, retry_count=2)

    assert await listings.get_orders_by_maker(WALLET) == []
    assert sleep.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_get_all_orders_by_maker_dedupes(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep
) -> None:
    calls: list[str] = []
    handler = orderbook_handler(
        {
            "opensea": [listing_dto("o1"), listing_dto("shared")],
            "looks-rare": [listing_dto("l1", market_id="looks-rare"), listing_dto("shared")],
            "nftgo": [],
        },
        calls,
    )
    listings = service(make_client(handler), clock, sleep, marketplace_delay=0.5)

    result = await listings.get_all_orders_by_maker(WALLET)

    assert [listing.id for listing in result] == ["o1", "shared", "l1"]
    assert calls == ["opensea", "looks-rare", "nftgo"]
    assert sleep.calls == [0.5, 0.5]


@pytest.mark.asyncio
async def test_progressive_reports_each_orderbook(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep
) -> None:
    handler = orderbook_handler(
        {
            "opensea": [listing_dto("o1")],
            "looks-rare": [listing_dto("l1", market_id="looks-rare")],
        }
    )
    listings = service(make_client(handler), clock, sleep)
    events: list[tuple[str, int, bool, int]] = []

    async def on_progress(marketplace, fresh, is_last, everything) -> None:
        events.append((marketplace, len(fresh), is_last, len(everything)))

    result = await listings.get_all_orders_by_maker_progressive(WALLET, on_progress)

    assert events == [
        ("opensea", 1, False, 1),
        ("looks-rare", 1, False, 2),
        ("nftgo", 0, True, 2),
    ]
    assert {listing.id for listing in result} == {"o1", "l1"}


@pytest.mark.asyncio
async def test_progressive_reports_cache_then_replaces_by_orderbook(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep
) -> None:
    handler = orderbook_handler({"opensea": [listing_dto("o2")]})
    listings = service(make_client(handler), clock, sleep)
    stale = parse_listing(listing_dto("o1"))
    listings.cache.set(ListingsService.cache_key(WALLET, "opensea"), [stale])
    events: list[tuple[str, list[str]]] = []

    def on_progress(marketplace, fresh, is_last, everything) -> None:
        events.append((marketplace, sorted(listing.id for listing in everything)))
        if marketplace == "cache":
            clock.advance(601)

    result = await listings.get_all_orders_by_maker_progressive(WALLET, on_progress)

    assert events[0] == ("cache", ["o1"])
    assert events[1] == ("opensea", ["o2"])
    assert [listing.id for listing in result] == ["o2"]


@pytest.mark.asyncio
async def test_cache_persists_to_file(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep, tmp_path: Path
) -> None:
    path = tmp_path / "listings.json"
    calls: list[str] = []
    handler = orderbook_handler({"opensea": [listing_dto("o1")]}, calls)

    first = service(make_client(handler), clock, sleep, cache_path=path)
    fetched = await first.get_orders_by_maker(WALLET, "opensea")

    stored = json.loads(path.read_text())
    assert stored["version"] == "1.0"
    assert "0xwallet-opensea" in stored["data"]

    clock.advance(60)
    second = service(make_client(handler), clock, sleep, cache_path=path)
    restored = await second.get_orders_by_maker(WALLET, "opensea")

    assert restored == fetched
    assert isinstance(restored[0], MarketplaceListing)
    assert calls == ["opensea"]


@pytest.mark.asyncio
async def test_stale_or_foreign_cache_file_is_ignored(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep, tmp_path: Path
) -> None:
    path = tmp_path / "listings.json"
    path.write_text(json.dumps({"version": "0.9", "timestamp": clock(), "data": {}}))
    assert len(service(make_client(lambda r: httpx.Response(200)), clock, sleep, cache_path=path).cache) == 0

    path.write_text("not json")
    assert len(service(make_client(lambda r: httpx.Response(200)), clock, sleep, cache_path=path).cache) == 0


@pytest.mark.asyncio
async def test_create_listings(make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep) -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"code": "SUCCESS", "data": {"actions": [{"kind": "signature"}]}})

    listings = service(make_client(handler), clock, sleep)

    data = await listings.create_listings(WALLET, [ListingRequest(token="0xabc:1", price="0.5")], ["opensea"])

    assert data == {"actions": [{"kind": "signature"}]}
    assert bodies[0]["maker"] == WALLET
    assert bodies[0]["params"][0]["listing_time"] == str(int(clock()))


@pytest.mark.asyncio
async def test_create_listings_rejected(make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep) -> None:
    rejected = httpx.Response(200, json={"code": "INVALID_PARAMS", "msg": "token not owned"})
    listings = service(make_client(lambda r: rejected), clock, sleep)

    with pytest.raises(ListingError, match="NFTGo API Error: token not owned"):
        await listings.create_listings(WALLET, [ListingRequest(token="0xabc:1", price="1")], ["nftgo"])


@pytest.mark.asyncio
async def test_cancel_listings_clears_wallet_cache(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep
) -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"code": "SUCCESS"})

    listings = service(make_client(handler), clock, sleep)
    listings.cache.set("0xwallet-opensea", [])
    listings.cache.set("0xwallet-nftgo", [])
    listings.cache.set("0xother-opensea", [])

    assert await listings.cancel_listings(WALLET, ["abc"]) == {"code": "SUCCESS"}

    assert bodies[0] == {"caller_address": WALLET, "orders": [{"order_type": "listing", "order_id": "abc"}]}
    assert len(listings.cache) == 1
    assert "0xother-opensea" in listings.cache


@pytest.mark.asyncio
async def test_check_post_order_results(make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep) -> None:
    answer = {"code": "SUCCESS", "data": {"post_order_results": [{"status": "failed"}, {"status": "success"}]}}
    listings = service(make_client(lambda r: httpx.Response(200, json=answer)), clock, sleep)
    assert await listings.check_post_order_results(["r1"]) == answer

    broken = service(make_client(lambda r: httpx.Response(502, text="bad gateway")), clock, sleep)
    result = await broken.check_post_order_results(["r1"])
    assert result["code"] == "ERROR"
    assert result["data"] is None

    odd = service(make_client(lambda r: httpx.Response(200, json={"code": "PENDING"})), clock, sleep)
    assert await odd.check_post_order_results(["r1"]) == {
        "code": "ERROR",
        "msg": "Invalid response format",
        "data": None,
    }


@pytest.mark.asyncio
async def test_offers_and_fulfill(make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("get-offers-feed-by-nft"):
            assert json.loads(request.content) == {"contract_address": "0xabc", "token_id": "1"}
            return httpx.Response(200, json={"data": {"offers": [{"price": 1.0}]}})
        return httpx.Response(200, json={"code": "SUCCESS", "data": {"actions": []}})

    listings = service(make_client(handler), clock, sleep)

    assert await listings.get_offers_for_nft("0xabc", "1") == [{"price": 1.0}]
    assert await listings.fulfill_offers(WALLET, ["o1"]) == {"actions": []}
    with pytest.raises(InvalidRequestError):
        await listings.fulfill_offers("", ["o1"])
