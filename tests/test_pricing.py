"""Tests for batched bulk pricing."""

import asyncio
import json
from collections.abc import Callable
from typing import TypeAlias

import httpx
import pytest

from nft_portfolio.nftgo.client import NFTGoClient
from nft_portfolio.portfolio.pricing import BulkPricingFetcher, batch_key
from tests.conftest import FakeClock, RecordingSleep

ClientFactory: TypeAlias = Callable[[Callable[[httpx.Request], httpx.Response]], NFTGoClient]


def nfts(count: int) -> list[dict[str, str]]:
    return [{"contract_address": "0xabc", "token_id": str(i)} for i in range(count)]


def echo_handler(bodies: list[dict]):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        items = [{"token_id": p["token_id"], "price": 1.0} for p in body["params"]]
        return httpx.Response(200, json={"items": items})

    return handler


def test_batch_key() -> None:
    assert batch_key(nfts(2)) == "0xabc:0|0xabc:1"
    assert batch_key(nfts(1), with_weights=True) == "0xabc:0#weights"


@pytest.mark.asyncio
async def test_empty_request_skips_upstream(make_client: ClientFactory, sleep: RecordingSleep) -> None:
    bodies: list[dict] = []
    fetcher = BulkPricingFetcher(make_client(echo_handler(bodies)), sleep=sleep)

    assert await fetcher.get_bulk_pricing([]) == {"items": []}
    assert bodies == []


@pytest.mark.asyncio
async def test_single_batch_returns_raw_payload(make_client: ClientFactory, sleep: RecordingSleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": [], "extra": "kept"})

    fetcher = BulkPricingFetcher(make_client(handler), sleep=sleep)

    assert await fetcher.get_bulk_pricing(nfts(3), with_weights=True) == {"items": [], "extra": "kept"}


@pytest.mark.asyncio
async def test_large_requests_are_batched(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep
) -> None:
    bodies: list[dict] = []
    fetcher = BulkPricingFetcher(make_client(echo_handler(bodies)), batch_size=2, cooldown=2.0, sleep=sleep, clock=clock)

    result = await fetcher.get_bulk_pricing(nfts(5))

    assert [len(body["params"]) for body in bodies] == [2, 2, 1]
    assert [item["token_id"] for item in result["items"]] == ["0", "1", "2", "3", "4"]
    assert sleep.calls == [2.0, 2.0]


@pytest.mark.asyncio
async def test_batch_size_is_capped(make_client: ClientFactory, sleep: RecordingSleep) -> None:
    bodies: list[dict] = []
    fetcher = BulkPricingFetcher(make_client(echo_handler(bodies)), sleep=sleep)

    await fetcher.get_bulk_pricing(nfts(60), batch_size=100)

    assert [len(body["params"]) for body in bodies] == [50, 10]


@pytest.mark.asyncio
async def test_cooldown_between_separate_calls(
    make_client: ClientFactory, clock: FakeClock, sleep: RecordingSleep
) -> None:
    bodies: list[dict] = []
    fetcher = BulkPricingFetcher(make_client(echo_handler(bodies)), cooldown=2.0, linger=0, sleep=sleep, clock=clock)

    await fetcher.get_bulk_pricing(nfts(1))
    clock.advance(0.5)
    await fetcher.get_bulk_pricing(nfts(2))

    assert sleep.calls == [pytest.approx(1.5)]
    assert len(bodies) == 2


@pytest.mark.asyncio
async def test_identical_concurrent_requests_share_one_call(
    make_client: ClientFactory, sleep: RecordingSleep
) -> None:
    bodies: list[dict] = []
    fetcher = BulkPricingFetcher(make_client(echo_handler(bodies)), sleep=sleep)

    first, second = await asyncio.gather(
        fetcher.get_bulk_pricing(nfts(2)),
        fetcher.get_bulk_pricing(nfts(2)),
    )

    assert first == second
    assert len(bodies) == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried(make_client: ClientFactory, sleep: RecordingSleep) -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json={"items": ["ok"]})

    fetcher = BulkPricingFetcher(make_client(handler), sleep=sleep)

    assert await fetcher.get_bulk_pricing(nfts(1)) == {"items": ["ok"]}
    assert 1.0 in sleep.calls


@pytest.mark.asyncio
async def test_get_price_estimate(make_client: ClientFactory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["tokenId"] == "1":
            return httpx.Response(200, json={"data": {"price": "1.25"}})
        if request.url.params["tokenId"] == "2":
            return httpx.Response(200, json={"data": {}})
        return httpx.Response(404, text="unknown token")

    fetcher = BulkPricingFetcher(make_client(handler))

    assert await fetcher.get_price_estimate("0xabc", "1") == 1.25
    assert await fetcher.get_price_estimate("0xabc", "2") == 0.0
    assert await fetcher.get_price_estimate("0xabc", "3") == 0.0
