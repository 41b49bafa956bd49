"""Core types shared by the proxy service and the portfolio layer."""

from nft_portfolio.core.errors import (
    ConfigurationError,
    InvalidRequestError,
    ListingError,
    MediaProbeError,
    MoralisAPIError,
    NFTGoAPIError,
    NFTPortfolioError,
    RateLimitExceededError,
)
from nft_portfolio.core.models import (
    NFT,
    Attribute,
    CollectionRef,
    FeeItem,
    ListingRequest,
    MarketplaceListing,
)

__all__ = [
    "NFT",
    "Attribute",
    "CollectionRef",
    "ConfigurationError",
    "FeeItem",
    "InvalidRequestError",
    "ListingError",
    "ListingRequest",
    "MediaProbeError",
    "MarketplaceListing",
    "MoralisAPIError",
    "NFTGoAPIError",
    "NFTPortfolioError",
    "RateLimitExceededError",
]
