"""
Map NFTGo payloads to portfolio models.

NFTGo field names differ between endpoints and optional fields are often
null, so every accessor here tolerates missing data.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog

from nft_portfolio.core.models import (
    NFT,
    Attribute,
    CollectionRef,
    FeeItem,
    MarketplaceListing,
)
from nft_portfolio.utils.media import PLACEHOLDER_IMAGE, ipfs_to_http, is_ipfs_url, is_valid_url

log = structlog.get_logger()

# Year 3000 in seconds; larger expiration values are milliseconds
MAX_SECONDS_TIMESTAMP = 32503680000

MARKETPLACE_ALIASES = {
    "seaport": "opensea",
    "looks-rare": "looksrare",
    "payment-processor": "nftgo",
}


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _resolve_image(raw: dict[str, Any]) -> str:
    image = raw.get("image") or ""
    animation = raw.get("animation_url")

    if (not image or not is_valid_url(image)) and animation:
        image = animation

    if is_ipfs_url(image):
        return ipfs_to_http(image)
    if not is_valid_url(image):
        return PLACEHOLDER_IMAGE
    return image


def parse_attributes(traits: Any) -> list[Attribute]:
    """Convert NFTGo traits, keeping the first of each ``trait_type:value``."""
    if not isinstance(traits, list):
        return []

    seen: set[str] = set()
    attributes = []
    for trait in traits:
        if not isinstance(trait, dict):
            continue
        trait_type = str(trait.get("type") or trait.get("trait_type") or "")
        value = str(trait.get("value") if trait.get("value") is not None else "")
        marker = f"{trait_type}:{value}"
        if marker in seen:
            continue
        seen.add(marker)

        percentage = trait.get("percentage")
        attributes.append(
            Attribute(
                trait_type=trait_type,
                value=value,
                display_type=trait.get("display_type"),
                rarity_percentage=_to_float(percentage) if percentage is not None else None,
            )
        )
    return attributes


def parse_nft(raw: dict[str, Any], owner: str) -> NFT:
    """Build an NFT from an ``/eth/v3/address/nfts`` entry."""
    contract = raw.get("contract_address") or ""
    token_id = str(raw.get("token_id") or "")
    rarity = raw.get("rarity") or {}
    last_sale = raw.get("last_sale") or {}

    return NFT(
        id=f"{contract}:{token_id}",
        name=raw.get("name") or f"#{token_id}",
        token_id=token_id,
        contract_address=contract,
        owner=owner,
        description=raw.get("description") or "",
        image=_resolve_image(raw),
        collection=CollectionRef(
            name=raw.get("collection_name") or "Unknown Collection",
            image=raw.get("collection_image"),
            slug=raw.get("collection_slug") or "",
            opensea_slug=raw.get("collection_opensea_slug") or "",
        ),
        metadata={
            "contract_type": raw.get("contract_type"),
            "blockchain": raw.get("blockchain"),
            "animation_url": raw.get("animation_url"),
            "rarity": rarity,
        },
        last_price=_to_float(last_sale.get("price")),
        currency=last_sale.get("currency") or "ETH",
        attributes=parse_attributes(raw.get("traits")),
        is_spam=bool(rarity.get("suspicious", False)),
    )


def parse_nfts(payload: dict[str, Any], owner: str) -> tuple[list[NFT], str | None]:
    """
    Parse an owned-NFTs page.

    Returns:
        (non-spam NFTs, next cursor or None)
    """
    raw_nfts = payload.get("nfts") if isinstance(payload, dict) else None
    if not isinstance(raw_nfts, list):
        log.warning("nftgo.unexpected_nfts_payload", owner=owner)
        return [], None

    nfts = [parse_nft(raw, owner) for raw in raw_nfts if isinstance(raw, dict)]
    visible = [nft for nft in nfts if not nft.is_spam]
    if len(visible) != len(nfts):
        log.debug("nftgo.spam_filtered", owner=owner, dropped=len(nfts) - len(visible))

    return visible, payload.get("next_cursor") or None


def normalize_marketplace(market_id: str | None) -> str:
    """Dashboard marketplace id for an NFTGo ``market_id``."""
    if not market_id:
        return ""
    return MARKETPLACE_ALIASES.get(market_id, market_id)


def parse_expiration(value: Any) -> datetime | None:
    """Expiration timestamp in seconds or milliseconds to an aware datetime."""
    if value is None or value == "":
        return None
    try:
        timestamp = int(float(value))
        if timestamp > MAX_SECONDS_TIMESTAMP:
            timestamp //= 1000
        return datetime.fromtimestamp(timestamp, tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        log.warning("nftgo.invalid_expiration", value=value)
        return None


def _parse_created(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return parse_expiration(value)


def _parse_fees(raw: Any) -> list[FeeItem]:
    if not isinstance(raw, list):
        return []
    return [
        FeeItem(
            bps=int(_to_float(fee.get("bps"))),
            kind=fee.get("kind") or "",
            recipient=fee.get("recipient") or "",
        )
        for fee in raw
        if isinstance(fee, dict)
    ]


def parse_listing(raw: dict[str, Any]) -> MarketplaceListing:
    """Build a listing from a ``listing_dtos`` entry."""
    price = raw.get("price") or {}
    amount = price.get("amount") or {}
    currency = price.get("currency") or {}
    expiration = raw.get("order_expiration_time")

    try:
        raw_expiration = int(float(expiration)) if expiration not in (None, "") else None
    except (TypeError, ValueError):
        raw_expiration = None

    return MarketplaceListing(
        id=str(raw.get("order_id") or ""),
        order_hash=raw.get("order_hash"),
        contract_address=raw.get("contract_address") or "",
        token_id=str(raw.get("token_id") or ""),
        price=_to_float(amount.get("decimal")),
        price_usd=_to_float(amount.get("usd")),
        currency=currency.get("symbol") or "ETH",
        marketplace=normalize_marketplace(raw.get("market_id")),
        original_marketplace=raw.get("market_id"),
        maker=raw.get("maker") or "",
        status=raw.get("status") or "",
        created_at=_parse_created(raw.get("order_create_time")),
        expires_at=parse_expiration(expiration),
        expiration=raw_expiration,
        kind=raw.get("kind"),
        fee_bps=int(_to_float(raw.get("fee_bps"))),
        fee_breakdown=_parse_fees(raw.get("fee_breakdown")),
    )


def parse_listings(payload: Any) -> list[MarketplaceListing]:
    """Listings from a get-orders-by-maker response, ``[]`` when unexpected."""
    if not isinstance(payload, dict) or payload.get("code") != "SUCCESS":
        log.warning("nftgo.unexpected_listings_payload", code=payload.get("code") if isinstance(payload, dict) else None)
        return []

    data = payload.get("data") or {}
    dtos = data.get("listing_dtos") if isinstance(data, dict) else None
    if not isinstance(dtos, list):
        log.warning("nftgo.unexpected_listings_payload", code="SUCCESS")
        return []

    return [parse_listing(dto) for dto in dtos if isinstance(dto, dict)]
