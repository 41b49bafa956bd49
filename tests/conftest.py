"""Shared fixtures: fake clock, recorded sleeps and NFTGo/Moralis clients over MockTransport."""

from collections.abc import Callable
from typing import Any, TypeAlias

import httpx
import pytest

from nft_portfolio.moralis.client import MoralisClient
from nft_portfolio.nftgo.client import NFTGoClient

Handler: TypeAlias = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep stand-in that records delays and advances a clock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def make_moralis_client() -> Callable[[Handler], MoralisClient]:
    def factory(handler: Handler) -> MoralisClient:
        return MoralisClient(
            api_key="moralis-key",
            base_url="https://moralis.test/api/v2.2",
            transport=httpx.MockTransport(handler),
        )

    return factory


@pytest.fixture
def make_client() -> Callable[[Handler], NFTGoClient]:
    def factory(handler: Handler) -> NFTGoClient:
        return NFTGoClient(
            api_key="test-key",
            base_url="https://nftgo.test",
            transport=httpx.MockTransport(handler),
        )

    return factory


def listing_dto(
    order_id: str,
    contract: str = "0xABC",
    token_id: str = "1",
    market_id: str = "seaport",
    status: str = "active",
    price: float = 1.5,
) -> dict[str, Any]:
    return {
        "order_id": order_id,
        "order_hash": f"0x{order_id}hash",
        "contract_address": contract,
        "token_id": token_id,
        "market_id": market_id,
        "maker": "0xmaker",
        "status": status,
        "price": {
            "amount": {"decimal": price, "usd": price * 2500},
            "currency": {"symbol": "ETH"},
        },
        "order_create_time": 1_700_000_000,
        "order_expiration_time": 1_800_000_000,
        "kind": "seaport-v1.6",
        "fee_bps": 50,
        "fee_breakdown": [{"bps": 50, "kind": "marketplace", "recipient": "0xfee"}],
    }


def listings_payload(*dtos: dict[str, Any]) -> dict[str, Any]:
    return {"code": "SUCCESS", "msg": "", "data": {"listing_dtos": list(dtos)}}


def nft_raw(token_id: str, contract: str = "0xABC", **extra: Any) -> dict[str, Any]:
    raw = {
        "contract_address": contract,
        "token_id": token_id,
        "name": f"Token {token_id}",
        "image": f"https://img.test/{token_id}.png",
        "collection_name": "Test Collection",
        "traits": [],
        "rarity": {"suspicious": False},
    }
    raw.update(extra)
    return raw


def moralis_item(token_id: str, contract: str = "0xabc", possible_spam: bool = False, **extra: Any) -> dict[str, Any]:
    item = {
        "token_address": contract,
        "token_id": token_id,
        "owner_of": "0xwallet",
        "name": "Test Collection",
        "metadata": None,
        "possible_spam": possible_spam,
        "normalized_metadata": {
            "name": f"Moralis {token_id}",
            "description": f"About {token_id}",
            "image": f"ipfs://Qm{token_id}",
            "attributes": [{"trait_type": "Hat", "value": "Red", "percentage": 12.5}],
        },
        "collection_logo": "https://img.test/logo.png",
    }
    item.update(extra)
    return item
