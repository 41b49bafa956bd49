"""Map Moralis wallet NFT payloads to portfolio models."""

from __future__ import annotations

import json
from typing import Any

import structlog

from nft_portfolio.core.models import NFT, Attribute, CollectionRef
from nft_portfolio.utils.media import PLACEHOLDER_IMAGE, ipfs_to_http, is_ipfs_url, is_valid_url

log = structlog.get_logger()


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_metadata(raw: Any) -> dict[str, Any]:
    """``metadata`` arrives as a JSON string (or null)."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        log.warning("moralis.invalid_metadata")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_moralis_attributes(raw: Any) -> list[Attribute]:
    if not isinstance(raw, list):
        return []

    attributes = []
    for attr in raw:
        if not isinstance(attr, dict):
            continue
        attributes.append(
            Attribute(
                trait_type=str(attr.get("trait_type") or ""),
                value=str(attr.get("value") or ""),
                display_type=attr.get("display_type") or None,
                max_value=_to_float(attr.get("max_value")) or None,
                rarity_percentage=_to_float(attr.get("percentage")) or None,
            )
        )
    return attributes


def _resolve_image(item: dict[str, Any], normalized: dict[str, Any], metadata: dict[str, Any]) -> str:
    image = (
        normalized.get("image")
        or metadata.get("image_url")
        or metadata.get("image")
        or item.get("collection_logo")
        or ""
    )
    if is_ipfs_url(image):
        image = ipfs_to_http(image)
    if not is_valid_url(image):
        return PLACEHOLDER_IMAGE
    return image


def parse_moralis_nft(item: dict[str, Any], owner: str | None = None) -> NFT:
    """Build an NFT from a Moralis ``result`` entry.

    ``metadata`` keeps Moralis' ``normalized_metadata`` and ``possible_spam``
    next to the token's own metadata fields.
    """
    contract = item.get("token_address") or ""
    token_id = str(item.get("token_id") or "")
    normalized = item.get("normalized_metadata") or {}
    metadata = _parse_metadata(item.get("metadata"))
    possible_spam = bool(item.get("possible_spam", False))

    last_sale = item.get("last_sale") or {}
    list_price = item.get("list_price") or {}
    price = _to_float(last_sale.get("price")) or _to_float(list_price.get("price")) or 0.0
    currency = last_sale.get("price_currency") or list_price.get("price_currency") or "ETH"

    return NFT(
        id=f"{contract}:{token_id}",
        name=normalized.get("name") or metadata.get("name") or f"{item.get('name') or ''} #{token_id}".strip(),
        token_id=token_id,
        contract_address=contract,
        owner=owner or item.get("owner_of") or "",
        description=normalized.get("description") or metadata.get("description") or "",
        image=_resolve_image(item, normalized, metadata),
        collection=CollectionRef(
            name=item.get("name") or "Unknown Collection",
            image=item.get("collection_logo"),
        ),
        metadata={
            "normalized_metadata": normalized,
            "possible_spam": possible_spam,
            **metadata,
        },
        last_price=price,
        currency=currency,
        attributes=parse_moralis_attributes(normalized.get("attributes") or metadata.get("attributes")),
        is_spam=possible_spam,
    )


def parse_moralis_nfts(payload: Any, owner: str | None = None) -> tuple[list[NFT], str | None]:
    """
    Parse a wallet NFTs page, spam included.

    Returns:
        (NFTs, next cursor or None)
    """
    results = payload.get("result") if isinstance(payload, dict) else None
    if not isinstance(results, list):
        log.warning("moralis.unexpected_nfts_payload", owner=owner)
        return [], None

    nfts = [parse_moralis_nft(item, owner) for item in results if isinstance(item, dict)]
    return nfts, payload.get("cursor") or None
