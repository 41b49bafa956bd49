"""Portfolio data model: NFTs, listings and listing requests.

Uses msgspec Structs: immutable, cheap to copy with ``msgspec.structs.replace``
and encodable straight to JSON for the API layer and the listings cache file.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import msgspec


def token_key(contract_address: str, token_id: str) -> str:
    """Matching key for an NFT: lower-cased contract plus exact token id."""
    return f"{contract_address.lower()}:{token_id}"


class Attribute(msgspec.Struct, frozen=True, kw_only=True):
    """A single NFT trait."""

    trait_type: str
    value: str
    display_type: str | None = None
    max_value: float | None = None
    rarity_percentage: float | None = None


class CollectionRef(msgspec.Struct, frozen=True, kw_only=True):
    """Collection summary attached to an NFT."""

    name: str = "Unknown Collection"
    image: str | None = None
    slug: str = ""
    opensea_slug: str = ""


class NFT(msgspec.Struct, frozen=True, kw_only=True):
    """An NFT owned by a wallet.

    Attributes:
        id: "<contract>:<token_id>" as reported by the vendor
        token_id: Token ID (decimal string)
        contract_address: Contract address, original casing
        owner: Wallet the NFT was fetched for
        selected: Multi-selection flag, toggled by the tracker
    """

    id: str
    name: str
    token_id: str
    contract_address: str
    owner: str
    description: str = ""
    image: str | None = None
    collection: CollectionRef = msgspec.field(default_factory=CollectionRef)
    metadata: dict[str, Any] = msgspec.field(default_factory=dict)
    last_price: float = 0.0
    currency: str = "ETH"
    attributes: list[Attribute] = msgspec.field(default_factory=list)
    is_spam: bool = False
    selected: bool = False

    @property
    def key(self) -> str:
        return token_key(self.contract_address, self.token_id)


class FeeItem(msgspec.Struct, frozen=True, kw_only=True):
    """One entry of a listing's fee breakdown."""

    bps: int = 0
    kind: str = ""
    recipient: str = ""


class MarketplaceListing(msgspec.Struct, frozen=True, kw_only=True):
    """An active (or historical) sell order created by a wallet.

    ``marketplace`` is the normalized id used by the dashboard (opensea,
    looksrare, nftgo); ``original_marketplace`` keeps NFTGo's market_id.
    """

    id: str
    contract_address: str
    token_id: str
    price: float
    currency: str
    marketplace: str
    maker: str
    status: str
    order_hash: str | None = None
    price_usd: float = 0.0
    original_marketplace: str | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None
    expiration: int | None = None
    kind: str | None = None
    fee_bps: int = 0
    fee_breakdown: list[FeeItem] = msgspec.field(default_factory=list)
    nft: NFT | None = None

    @property
    def key(self) -> str:
        return token_key(self.contract_address, self.token_id)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class ListingRequest(msgspec.Struct, frozen=True, kw_only=True):
    """Request to list one NFT at a price in ETH.

    Attributes:
        token: "<contract>:<token_id>"
        price: Price in ETH as a decimal string (e.g. "0.25")
    """

    token: str
    price: str

    @classmethod
    def for_nft(cls, nft: NFT, price: str) -> ListingRequest:
        return cls(token=f"{nft.contract_address}:{nft.token_id}", price=price)
