"""
NFTGo data & trade API client.

Thin async wrapper over the vendor endpoints the dashboard uses. Methods
return the decoded JSON untouched; mapping to portfolio models lives in
``nft_portfolio.nftgo.parsing``.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from nft_portfolio.core.errors import NFTGoAPIError, RateLimitExceededError
from nft_portfolio.utils.rate_limiter import SlidingWindowRateLimiter

log = structlog.get_logger()


class NFTGoClient:
    """
    Client for the NFTGo API.

    Supports NFT ownership, pricing, orderbook and trade endpoints on
    Ethereum. Non-2xx answers raise NFTGoAPIError carrying the status and
    the response text; 429 raises RateLimitExceededError.
    """

    BASE_URL = "https://data-api.nftgo.io"
    DEFAULT_CHAIN = "ethereum"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 30.0,
        chain: str = DEFAULT_CHAIN,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize NFTGo client.

        Args:
            api_key: NFTGo API key (sent as X-API-KEY)
            base_url: Override the API origin
            timeout: Request timeout in seconds
            chain: Default chain for orderbook and trade endpoints
            rate_limiter: Optional outbound limiter shared by all calls
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self.chain = chain
        self.rate_limiter = rate_limiter
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._headers = {
            "X-API-KEY": api_key,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> NFTGoClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        client = await self._get_client()
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        log.debug("nftgo.request", method=method, path=path, params=params)
        return await client.request(method, path, params=params, json=json)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        """Make an API request and decode the JSON body.

        Raises:
            RateLimitExceededError: NFTGo answered 429
            NFTGoAPIError: Any other non-2xx status
            httpx.TransportError: Connection failures and timeouts
        """
        response = await self._send(method, path, params=params, json=json)

        if response.is_error:
            detail = response.text
            log.error(
                "nftgo.api_error",
                path=path,
                status=response.status_code,
                detail=detail[:200],
            )
            if response.status_code == 429:
                raise RateLimitExceededError("NFTGo API error: 429", details=detail)
            raise NFTGoAPIError(response.status_code, details=detail)

        return response.json()

    # ========== Ownership & metadata ==========

    async def get_address_nfts(
        self,
        address: str,
        limit: int = 20,
        sort_by: str = "receivedTime",
        asc: bool = False,
        cursor: str | None = None,
    ) -> dict[str, Any]:
        """
        Fetch NFTs owned by a wallet (Ethereum only).

        Returns:
            Raw payload with ``nfts`` and ``next_cursor``
        """
        params: dict[str, Any] = {
            "address": address,
            "limit": limit,
            "sort_by": sort_by,
            "asc": str(asc).lower(),
        }
        if cursor:
            params["cursor"] = cursor

        return await self._request("GET", "/eth/v3/address/nfts", params=params)

    async def get_nft_info(self, contract: str, token_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/eth/v2/nft/{contract}/{token_id}/info")

    # ========== Pricing ==========

    async def get_price_estimate(self, contract: str, token_id: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            "/pricing/v1/pricing",
            params={"contract": contract, "tokenId": token_id},
        )

    async def bulk_pricing(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Price estimates for many NFTs at once.

        Args:
            payload: ``{"params": [{"contract_address", "token_id"}], "with_weights": bool}``
        """
        return await self._request("POST", "/pricing/v1/bulk-pricing", json=payload)

    # ========== Orderbook ==========

    async def get_orders_by_maker(
        self,
        maker: str,
        order_type: str = "listing",
        limit: int = 100,
        orderbook: str | None = None,
        chain: str | None = None,
    ) -> dict[str, Any]:
        """
        Orders created by a wallet, optionally on one orderbook.

        Args:
            maker: Wallet address of the order maker
            order_type: "listing" or "offer"
            limit: Page size
            orderbook: Orderbook name (opensea, looks-rare, nftgo)
            chain: Chain override
        """
        params: dict[str, Any] = {"chain": chain or self.chain}
        if orderbook:
            params["order_book_name"] = orderbook

        body = {
            "maker": maker,
            "order_type": order_type,
            "include_private": False,
            "offset": 0,
            "limit": limit,
        }
        return await self._request(
            "POST",
            "/orderbook/v1/orders/get-orders-by-maker",
            params=params,
            json=body,
        )

    async def get_offers_feed_by_nft(
        self,
        payload: dict[str, Any],
        chain: str | None = None,
        limit: int = 50,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/orderbook/v1/orders/get-offers-feed-by-nft",
            params={"chain": chain or self.chain, "limit": limit},
            json=payload,
        )

    # ========== Trade ==========

    async def _trade(self, name: str, payload: dict[str, Any], chain: str | None) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/trade/v1/nft/{name}",
            params={"chain": chain or self.chain},
            json=payload,
        )

    async def create_listings(self, payload: dict[str, Any], chain: str | None = None) -> dict[str, Any]:
        return await self._trade("create-listings", payload, chain)

    async def cancel_orders(self, payload: dict[str, Any], chain: str | None = None) -> dict[str, Any]:
        return await self._trade("cancel-orders", payload, chain)

    async def fulfill_offers(self, payload: dict[str, Any], chain: str | None = None) -> dict[str, Any]:
        return await self._trade("fulfill-offers", payload, chain)

    async def check_post_order_results(
        self,
        payload: dict[str, Any],
        chain: str | None = None,
    ) -> dict[str, Any]:
        return await self._trade("check-post-order-results", payload, chain)

    async def post_order(
        self,
        payload: dict[str, Any],
        chain: str | None = None,
    ) -> tuple[int, Any]:
        """
        Submit a signed order.

        Returns:
            ``(status_code, body)`` as NFTGo answered, errors included
        """
        response = await self._send(
            "POST",
            "/trade/v1/nft/post-order",
            params={"chain": chain or self.chain},
            json=payload,
        )
        try:
            body = response.json()
        except ValueError:
            body = {"error": f"NFTGo API error: {response.status_code}", "details": response.text}
        return response.status_code, body

    async def trade_action(
        self,
        action: str,
        payload: dict[str, Any],
        chain: str | None = None,
    ) -> dict[str, Any]:
        """
        Legacy trade dispatcher.

        ``listings`` and ``cancel-orders`` map to their historical endpoints,
        anything else to ``/trade/v1/nft/<action>``.
        """
        if action == "listings":
            path = "/trade/v1/nft/listings"
        elif action == "cancel-orders":
            path = "/trade/v1/nft/orders/cancel"
        else:
            path = f"/trade/v1/nft/{action.strip('/')}"

        return await self._request("POST", path, params={"chain": chain or self.chain}, json=payload)
