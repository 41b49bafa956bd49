"""HTTP proxy service: FastAPI app, routers and server-side proxies."""

from nft_portfolio.api.app import create_app
from nft_portfolio.api.bulk_pricing import BulkPricingProxy
from nft_portfolio.api.maker_orders import MakerOrdersProxy
from nft_portfolio.api.state import ProxyState

__all__ = [
    "BulkPricingProxy",
    "MakerOrdersProxy",
    "ProxyState",
    "create_app",
]
