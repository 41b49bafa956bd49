"""
NFTGo trade payload builders.

Pure functions: they shape create-listings, cancel-orders and post-order
bodies and never touch the network.
"""

from __future__ import annotations

import copy
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from nft_portfolio.core.errors import InvalidRequestError
from nft_portfolio.core.models import ListingRequest

log = structlog.get_logger()

WEI_PER_ETH = Decimal(10) ** 18
SECONDS_PER_DAY = 24 * 60 * 60

# Order hashes are long hex strings; NFTGo order ids are short
ORDER_ID_MAX_LENGTH = 24


@dataclass(frozen=True)
class MarketplaceConfig:
    """Orderbook and order kind used when listing on a marketplace."""

    orderbook: str
    order_kind: str


MARKETPLACE_CONFIGS: dict[str, MarketplaceConfig] = {
    "opensea": MarketplaceConfig(orderbook="opensea", order_kind="seaport-v1.6"),
    "looksrare": MarketplaceConfig(orderbook="looks-rare", order_kind="looks-rare-v2"),
    "nftgo": MarketplaceConfig(orderbook="nftgo", order_kind="seaport-v1.5"),
}

ORDERBOOKS = ("opensea", "looks-rare", "nftgo")

SEAPORT_KINDS = ("seaport-v1.5", "seaport-v1.6")


def marketplace_config(marketplace: str) -> MarketplaceConfig:
    return MARKETPLACE_CONFIGS.get(marketplace, MARKETPLACE_CONFIGS["nftgo"])


def eth_to_wei(price: str | float) -> str:
    """ETH amount to an integer wei decimal string."""
    try:
        wei = Decimal(str(price)) * WEI_PER_ETH
    except InvalidOperation as e:
        raise InvalidRequestError("Invalid listing price", details=str(price)) from e
    if not wei.is_finite():
        raise InvalidRequestError("Invalid listing price", details=str(price))
    amount = int(wei)
    if amount <= 0:
        raise InvalidRequestError("Listing price must be positive", details=str(price))
    return str(amount)


def build_listing_params(
    maker: str,
    requests: Sequence[ListingRequest],
    marketplaces: Sequence[str],
    duration_days: int = 7,
    now: float | None = None,
) -> dict[str, Any]:
    """
    Build a create-listings body: one param per (NFT, marketplace).

    Args:
        maker: Wallet creating the listings
        requests: NFTs and their ETH prices
        marketplaces: Dashboard marketplace ids (opensea, looksrare, nftgo)
        duration_days: Listing lifetime
        now: Unix time override

    Returns:
        ``{"maker": ..., "params": [...]}``
    """
    current = int(now if now is not None else time.time())
    expiration_time = str(current + duration_days * SECONDS_PER_DAY)
    listing_time = str(current)

    params = []
    for request in requests:
        wei_price = eth_to_wei(request.price)
        for marketplace in marketplaces:
            config = marketplace_config(marketplace)
            params.append(
                {
                    "token": request.token,
                    "wei_price": wei_price,
                    "order_kind": config.order_kind,
                    "orderbook": config.orderbook,
                    "expiration_time": expiration_time,
                    "listing_time": listing_time,
                    "automated_royalties": config.orderbook == "opensea",
                }
            )

    return {"maker": maker, "params": params}


def order_reference(order_id: str, order_type: str = "listing") -> dict[str, str]:
    """Reference an order by hash when the id is too long to be an NFTGo id."""
    if len(order_id) > ORDER_ID_MAX_LENGTH:
        return {"order_type": order_type, "order_hash": order_id}
    return {"order_type": order_type, "order_id": order_id}


def normalize_cancel_orders(orders: Iterable[Any]) -> list[dict[str, Any]]:
    """
    Keep orders NFTGo can cancel.

    Orders with ``order_id`` or ``order_hash`` pass through; bare ``{id}``
    entries are converted with ``order_reference``.

    Raises:
        InvalidRequestError: Nothing left to cancel
    """
    normalized = []
    for order in orders:
        if not isinstance(order, dict):
            continue
        if order.get("order_id") or order.get("order_hash"):
            normalized.append(order)
        elif order.get("id"):
            normalized.append(order_reference(str(order["id"]), order.get("order_type", "listing")))
        else:
            log.warning("orders.cancel_dropped", order=order)

    if not normalized:
        raise InvalidRequestError("No valid orders to cancel")
    return normalized


def build_cancel_payload(caller: str, order_ids: Sequence[str]) -> dict[str, Any]:
    if not caller:
        raise InvalidRequestError("Wallet address is required")
    ids = [order_id for order_id in order_ids if order_id and order_id.strip()]
    if not ids:
        raise InvalidRequestError("No valid order IDs provided")
    return {
        "caller_address": caller,
        "orders": [order_reference(order_id.strip()) for order_id in ids],
    }


def has_signature(body: dict[str, Any]) -> bool:
    order = body.get("order")
    order_data = (order.get("data") or {}) if isinstance(order, dict) else {}
    data = body.get("data") or {}
    return bool(
        body.get("signature")
        or (isinstance(order_data, dict) and order_data.get("signature"))
        or (isinstance(order, dict) and order.get("signature"))
        or (isinstance(data, dict) and data.get("signature"))
    )


def _split_signature(signature: str) -> tuple[str, str]:
    return "0x" + signature[2:66], "0x" + signature[66:130]


def prepare_post_order(body: dict[str, Any], require_signature: bool) -> dict[str, Any]:
    """
    Return a copy of a post-order body fixed up for NFTGo.

    - payment-processor-v2: r and s split out of the signature
    - seaport: signature copied into ``order.data``
    - OpenSea listings: ``bulk_data`` added when missing

    Raises:
        InvalidRequestError: No signature anywhere and one is required
    """
    prepared = copy.deepcopy(body)
    signed = has_signature(prepared)
    signature = prepared.get("signature")
    order = prepared.get("order")

    if isinstance(order, dict) and isinstance(signature, str):
        data = order.get("data")
        kind = order.get("kind")
        if kind == "payment-processor-v2":
            if len(signature) >= 132 and isinstance(data, dict):
                data["r"], data["s"] = _split_signature(signature)
        elif kind in SEAPORT_KINDS and isinstance(data, dict):
            data["signature"] = signature
            if len(signature) >= 132 and "r" in data and "s" in data:
                data["r"], data["s"] = _split_signature(signature)

    if (
        prepared.get("orderbook") == "opensea"
        and prepared.get("order_type") == "listing"
        and not prepared.get("bulk_data")
    ):
        indexes = prepared.get("order_indexes")
        order_index = indexes[0] if isinstance(indexes, list) and indexes else 0
        prepared["bulk_data"] = {
            "kind": "seaport-v1.6",
            "data": {"order_index": order_index, "merkle_proof": []},
        }

    if not signed and require_signature:
        raise InvalidRequestError("Missing signature in payload")

    log.debug("orders.post_order_prepared", signed=signed, kind=order.get("kind") if isinstance(order, dict) else None)
    return prepared


def validate_actions(data: dict[str, Any] | None) -> int:
    """Log malformed transaction actions of a create-listings answer.

    Returns:
        Number of valid actions
    """
    actions = data.get("actions") if isinstance(data, dict) else None
    if not isinstance(actions, list):
        log.warning("orders.unexpected_actions", data_type=type(data).__name__)
        return 0

    valid = 0
    for index, action in enumerate(actions, start=1):
        if not isinstance(action, dict):
            continue
        if action.get("kind") == "transaction":
            tx = action.get("data") or {}
            to = tx.get("to") if isinstance(tx, dict) else None
            if not isinstance(to, str) or not to.startswith("0x"):
                log.error("orders.invalid_transaction_action", index=index, data=tx)
                continue
        valid += 1
    return valid
