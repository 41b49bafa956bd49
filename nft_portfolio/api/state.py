"""Per-app state shared by the route handlers."""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
from fastapi import Request

from nft_portfolio.api.bulk_pricing import BulkPricingProxy
from nft_portfolio.api.maker_orders import MakerOrdersProxy
from nft_portfolio.config import NFTGoSettings
from nft_portfolio.core.errors import ConfigurationError
from nft_portfolio.moralis.client import MoralisClient
from nft_portfolio.nftgo.client import NFTGoClient
from nft_portfolio.portfolio.eth_price import EthPriceFeed
from nft_portfolio.utils.rate_limiter import SlidingWindowRateLimiter
from nft_portfolio.utils.resilience import RetryPolicy, is_server_error


@dataclass
class ProxyState:
    """Clients, caches and limiters living as long as the app."""

    settings: NFTGoSettings
    client: NFTGoClient | None
    bulk_pricing: BulkPricingProxy
    maker_orders: MakerOrdersProxy
    eth_price: EthPriceFeed
    pricing_retry: RetryPolicy
    moralis: MoralisClient | None = None
    media_transport: httpx.AsyncBaseTransport | None = None
    _media_client: httpx.AsyncClient | None = field(default=None, repr=False)

    @classmethod
    def build(
        cls,
        settings: NFTGoSettings,
        client: NFTGoClient | None = None,
        eth_price: EthPriceFeed | None = None,
        media_transport: httpx.AsyncBaseTransport | None = None,
        moralis: MoralisClient | None = None,
    ) -> ProxyState:
        """Wire the proxies from settings.

        Without an explicit client one is created when an API key is
        configured; otherwise vendor routes answer with a configuration error.
        The Moralis client follows the same rule with its own key.
        """
        if client is None and settings.api_key is not None and settings.api_key.get_secret_value():
            client = NFTGoClient(
                api_key=settings.require_api_key(),
                base_url=settings.base_url,
                timeout=settings.request_timeout,
                chain=settings.chain,
                rate_limiter=SlidingWindowRateLimiter(
                    max_requests=settings.nftgo_rate_max,
                    time_window=settings.nftgo_rate_window,
                    name="nftgo",
                ),
            )

        if moralis is None and settings.moralis_api_key is not None and settings.moralis_api_key.get_secret_value():
            moralis = MoralisClient(
                api_key=settings.require_moralis_api_key(),
                base_url=settings.moralis_base_url,
                timeout=settings.request_timeout,
            )

        return cls(
            settings=settings,
            client=client,
            bulk_pricing=BulkPricingProxy.from_settings(settings, client),
            maker_orders=MakerOrdersProxy.from_settings(settings, client),
            eth_price=eth_price or EthPriceFeed(),
            pricing_retry=RetryPolicy.fixed(
                settings.upstream_max_retries,
                settings.upstream_retry_delay,
                retry_on=is_server_error,
            ),
            media_transport=media_transport,
            moralis=moralis,
        )

    def require_client(self) -> NFTGoClient:
        if self.client is None:
            raise ConfigurationError("API key configuration error")
        return self.client

    def require_moralis(self) -> MoralisClient:
        if self.moralis is None:
            raise ConfigurationError("API key configuration error")
        return self.moralis

    async def media_client(self) -> httpx.AsyncClient:
        if self._media_client is None:
            self._media_client = httpx.AsyncClient(
                timeout=10.0,
                follow_redirects=True,
                transport=self.media_transport,
            )
        return self._media_client

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
        if self.moralis is not None:
            await self.moralis.close()
        await self.eth_price.close()
        if self._media_client is not None:
            await self._media_client.aclose()
            self._media_client = None


def get_state(request: Request) -> ProxyState:
    """FastAPI dependency returning the app's ProxyState."""
    return request.app.state.proxy
