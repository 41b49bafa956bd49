"""Tests for NFTGo trade payload builders."""

import pytest

from nft_portfolio.core.errors import InvalidRequestError
from nft_portfolio.core.models import ListingRequest
from nft_portfolio.nftgo.orders import (
    build_cancel_payload,
    build_listing_params,
    eth_to_wei,
    has_signature,
    marketplace_config,
    normalize_cancel_orders,
    order_reference,
    prepare_post_order,
    validate_actions,
)

R = "a" * 64
S = "b" * 64
SIGNATURE = f"0x{R}{S}1b"


def test_eth_to_wei() -> None:
    assert eth_to_wei("0.25") == "250000000000000000"
    assert eth_to_wei(1) == "1000000000000000000"
    assert eth_to_wei("0.000000000000000001") == "1"


@pytest.mark.parametrize("price", ["abc", "0", "-1", "NaN", "Infinity", "0.0000000000000000001"])
def test_eth_to_wei_rejects_bad_prices(price: str) -> None:
    with pytest.raises(InvalidRequestError):
        eth_to_wei(price)


def test_marketplace_config_falls_back_to_nftgo() -> None:
    assert marketplace_config("opensea").order_kind == "seaport-v1.6"
    assert marketplace_config("looksrare").orderbook == "looks-rare"
    assert marketplace_config("unknown").orderbook == "nftgo"


def test_build_listing_params_one_per_marketplace() -> None:
    requests = [ListingRequest(token="0xabc:1", price="0.5"), ListingRequest(token="0xabc:2", price="1")]

    body = build_listing_params("0xmaker", requests, ["opensea", "looksrare"], duration_days=7, now=1000)

    assert body["maker"] == "0xmaker"
    assert len(body["params"]) == 4
    first = body["params"][0]
    assert first == {
        "token": "0xabc:1",
        "wei_price": "500000000000000000",
        "order_kind": "seaport-v1.6",
        "orderbook": "opensea",
        "expiration_time": str(1000 + 7 * 86400),
        "listing_time": "1000",
        "automated_royalties": True,
    }
    assert body["params"][1]["orderbook"] == "looks-rare"
    assert body["params"][1]["automated_royalties"] is False


def test_order_reference_uses_hash_for_long_ids() -> None:
    assert order_reference("short-id") == {"order_type": "listing", "order_id": "short-id"}
    long_id = "0x" + "f" * 64
    assert order_reference(long_id) == {"order_type": "listing", "order_hash": long_id}


def test_normalize_cancel_orders() -> None:
    orders = normalize_cancel_orders(
        [
            {"order_id": "abc", "order_type": "listing"},
            {"id": "0x" + "e" * 64},
            {"foo": "bar"},
            "junk",
        ]
    )
    assert orders == [
        {"order_id": "abc", "order_type": "listing"},
        {"order_type": "listing", "order_hash": "0x" + "e" * 64},
    ]


def test_normalize_cancel_orders_rejects_empty() -> None:
    with pytest.raises(InvalidRequestError, match="No valid orders to cancel"):
        normalize_cancel_orders([{"foo": "bar"}])


def test_build_cancel_payload() -> None:
    payload = build_cancel_payload("0xwallet", ["abc", " ", " def "])
    assert payload == {
        "caller_address": "0xwallet",
        "orders": [
            {"order_type": "listing", "order_id": "abc"},
            {"order_type": "listing", "order_id": "def"},
        ],
    }

    with pytest.raises(InvalidRequestError, match="Wallet address is required"):
        build_cancel_payload("", ["abc"])
    with pytest.raises(InvalidRequestError, match="No valid order IDs provided"):
        build_cancel_payload("0xwallet", ["", "  "])


def test_has_signature_locations() -> None:
    assert has_signature({"signature": "0x1"})
    assert has_signature({"order": {"data": {"signature": "0x1"}}})
    assert has_signature({"order": {"signature": "0x1"}})
    assert has_signature({"data": {"signature": "0x1"}})
    assert not has_signature({"order": {"data": {}}})


def test_prepare_post_order_splits_payment_processor_signature() -> None:
    body = {"signature": SIGNATURE, "order": {"kind": "payment-processor-v2", "data": {}}}

    prepared = prepare_post_order(body, require_signature=True)

    assert prepared["order"]["data"] == {"r": f"0x{R}", "s": f"0x{S}"}
    assert body["order"]["data"] == {}


def test_prepare_post_order_copies_seaport_signature() -> None:
    body = {
        "signature": SIGNATURE,
        "order": {"kind": "seaport-v1.6", "data": {"r": "", "s": ""}},
        "orderbook": "opensea",
        "order_type": "listing",
        "order_indexes": [3],
    }

    prepared = prepare_post_order(body, require_signature=True)

    assert prepared["order"]["data"] == {"signature": SIGNATURE, "r": f"0x{R}", "s": f"0x{S}"}
    assert prepared["bulk_data"] == {
        "kind": "seaport-v1.6",
        "data": {"order_index": 3, "merkle_proof": []},
    }


def test_prepare_post_order_keeps_existing_bulk_data() -> None:
    body = {
        "signature": SIGNATURE,
        "orderbook": "opensea",
        "order_type": "listing",
        "bulk_data": {"kind": "custom"},
    }
    assert prepare_post_order(body, require_signature=False)["bulk_data"] == {"kind": "custom"}


def test_prepare_post_order_signature_requirement() -> None:
    with pytest.raises(InvalidRequestError, match="Missing signature in payload"):
        prepare_post_order({"order": {"kind": "seaport-v1.6", "data": {}}}, require_signature=True)

    assert prepare_post_order({"order": {}}, require_signature=False) == {"order": {}}


def test_validate_actions() -> None:
    data = {
        "actions": [
            {"kind": "signature", "data": {}},
            {"kind": "transaction", "data": {"to": "0xconduit"}},
            {"kind": "transaction", "data": {"to": None}},
        ]
    }
    assert validate_actions(data) == 2
    assert validate_actions({"actions": "nope"}) == 0
    assert validate_actions(None) == 0
