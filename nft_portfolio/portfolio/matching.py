"""Match listings and offers to NFTs by lower-cased contract and token id."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import msgspec

from nft_portfolio.core.models import NFT, MarketplaceListing


def attach_nfts(listings: Iterable[MarketplaceListing], nfts: Iterable[NFT]) -> list[MarketplaceListing]:
    """Copies of ``listings`` carrying their matching NFT, when one exists."""
    by_key = {nft.key: nft for nft in nfts}
    attached = []
    for listing in listings:
        nft = by_key.get(listing.key)
        attached.append(msgspec.structs.replace(listing, nft=nft) if nft is not None else listing)
    return attached


def listings_for_nft(listings: Iterable[MarketplaceListing], nft: NFT) -> list[MarketplaceListing]:
    """Active listings of ``nft`` across marketplaces."""
    key = nft.key
    return [listing for listing in listings if listing.key == key and listing.is_active]


def listing_info(listings: Iterable[MarketplaceListing], nft: NFT) -> MarketplaceListing | None:
    key = nft.key
    for listing in listings:
        if listing.key == key and listing.is_active:
            return listing
    return None


def listed_marketplaces(listings: Iterable[MarketplaceListing], nft: NFT) -> list[str]:
    """Marketplaces ``nft`` is actively listed on, first-seen order."""
    return list(dict.fromkeys(listing.marketplace for listing in listings_for_nft(listings, nft)))


def is_listed(listings: Iterable[MarketplaceListing], nft: NFT) -> bool:
    return listing_info(listings, nft) is not None


def offer_price(offer: dict[str, Any]) -> float:
    """Offer price in ETH.

    NFTGo offers carry either a plain number or ``{"amount": ..., "fee_bps": ...}``
    where amount may itself be ``{"decimal": ...}``.
    """
    price = offer.get("price")
    if isinstance(price, dict):
        price = price.get("amount")
        if isinstance(price, dict):
            price = price.get("decimal")
    try:
        return float(price) if price is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def top_offer(offers: Sequence[dict[str, Any]]) -> dict[str, Any] | None:
    """Highest priced offer, None when there are none."""
    if not offers:
        return None
    return max(offers, key=offer_price)
