"""Portfolio data layer: owned NFTs, pricing, listings and selection."""

from nft_portfolio.portfolio.eth_price import EthPriceFeed
from nft_portfolio.portfolio.listings import ListingsService
from nft_portfolio.portfolio.pricing import BulkPricingFetcher
from nft_portfolio.portfolio.tracker import PortfolioTracker

__all__ = [
    "BulkPricingFetcher",
    "EthPriceFeed",
    "ListingsService",
    "PortfolioTracker",
]
