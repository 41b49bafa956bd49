"""NFTGo API client, response parsing and trade payload builders."""

from nft_portfolio.nftgo.client import NFTGoClient
from nft_portfolio.nftgo.orders import (
    MARKETPLACE_CONFIGS,
    ORDERBOOKS,
    build_cancel_payload,
    build_listing_params,
    normalize_cancel_orders,
    order_reference,
    prepare_post_order,
    validate_actions,
)
from nft_portfolio.nftgo.parsing import (
    normalize_marketplace,
    parse_expiration,
    parse_listing,
    parse_listings,
    parse_nft,
    parse_nfts,
)

__all__ = [
    "MARKETPLACE_CONFIGS",
    "ORDERBOOKS",
    "NFTGoClient",
    "build_cancel_payload",
    "build_listing_params",
    "normalize_cancel_orders",
    "normalize_marketplace",
    "order_reference",
    "parse_expiration",
    "parse_listing",
    "parse_listings",
    "parse_nft",
    "parse_nfts",
    "prepare_post_order",
    "validate_actions",
]
