"""Cross-check NFTGo NFTs against Moralis.

NFTs Moralis flags as possible spam are dropped. The others keep their
NFTGo data, with empty attributes, description and image filled from the
Moralis copy and Moralis metadata merged in. NFTs Moralis doesn't know
are kept unchanged.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

import msgspec
import structlog

from nft_portfolio.core.models import NFT
from nft_portfolio.utils.media import PLACEHOLDER_IMAGE

log = structlog.get_logger()

_DECIMAL_RE = re.compile(r"^\d+$")
_HEX_RE = re.compile(r"^0[xX][0-9a-fA-F]+$")


def normalize_token_id(token_id: str) -> str:
    """Canonical decimal form of a numeric token id ("0x0a", "010" -> "10")."""
    value = token_id.strip()
    if _DECIMAL_RE.match(value):
        return str(int(value))
    if _HEX_RE.match(value):
        return str(int(value, 16))
    return token_id


def _keys(nft: NFT) -> list[str]:
    contract = nft.contract_address.lower()
    normalized = normalize_token_id(nft.token_id)
    keys = [f"{contract}:{normalized}"]
    if normalized != nft.token_id:
        keys.append(f"{contract}:{nft.token_id}")
    return keys


def _has_image(image: str | None) -> bool:
    return bool(image) and image != PLACEHOLDER_IMAGE


def _enrich(nft: NFT, source: NFT) -> NFT:
    changes = {"metadata": {**nft.metadata, **source.metadata}}

    if not nft.attributes and source.attributes:
        changes["attributes"] = list(source.attributes)
    if not nft.description and source.description:
        changes["description"] = source.description
    if not _has_image(nft.image):
        if _has_image(source.image):
            changes["image"] = source.image
        elif source.collection.image:
            changes["image"] = source.collection.image

    return msgspec.structs.replace(nft, **changes)


def merge_with_moralis(nftgo_nfts: Sequence[NFT], moralis_nfts: Sequence[NFT]) -> list[NFT]:
    """NFTGo NFTs without Moralis spam, enriched from matching Moralis NFTs.

    Matching uses the lower-cased contract and the normalized token id,
    then the token id as reported.
    """
    if not moralis_nfts:
        return list(nftgo_nfts)

    by_key: dict[str, NFT] = {}
    for nft in moralis_nfts:
        for key in _keys(nft):
            by_key.setdefault(key, nft)

    merged = []
    spam = 0
    unmatched = 0
    for nft in nftgo_nfts:
        source = next((by_key[key] for key in _keys(nft) if key in by_key), None)
        if source is None:
            unmatched += 1
            merged.append(nft)
        elif source.is_spam:
            spam += 1
        else:
            merged.append(_enrich(nft, source))

    log.debug(
        "moralis.merged",
        nftgo=len(nftgo_nfts),
        moralis=len(moralis_nfts),
        kept=len(merged),
        spam_dropped=spam,
        unmatched=unmatched,
    )
    return merged
