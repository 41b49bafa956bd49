"""
Moralis NFT API client.

Second source of wallet NFTs: used as a fallback when NFTGo has nothing
and to cross-check NFTGo results for spam and missing metadata.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from nft_portfolio.core.errors import MoralisAPIError
from nft_portfolio.utils.rate_limiter import SlidingWindowRateLimiter

log = structlog.get_logger()


class MoralisClient:
    """
    Client for the Moralis deep-index API.

    Spam is never excluded server side: callers read ``possible_spam``
    themselves. Non-2xx answers raise MoralisAPIError.
    """

    BASE_URL = "https://deep-index.moralis.io/api/v2.2"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 30.0,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Moralis client.

        Args:
            api_key: Moralis API key (sent as X-API-Key)
            base_url: Override the API origin
            timeout: Request timeout in seconds
            rate_limiter: Optional outbound limiter
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._headers = {
            "X-API-Key": api_key,
            "Accept": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
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

    async def __aenter__(self) -> MoralisClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def get_wallet_nfts(
        self,
        address: str,
        chain_id: int | str = 1,
        cursor: str | None = None,
    ) -> dict[str, Any]:
        """
        Fetch NFTs owned by a wallet.

        Args:
            address: Wallet address
            chain_id: Chain id, sent as ``0x<chain_id>``
            cursor: Moralis page cursor

        Returns:
            Raw payload with ``result`` and ``cursor``

        Raises:
            MoralisAPIError: Moralis answered with a non-2xx status
            httpx.TransportError: Connection failures and timeouts
        """
        params: dict[str, Any] = {
            "chain": f"0x{chain_id}",
            "format": "decimal",
            "normalizeMetadata": "true",
            "media_items": "true",
            "include_prices": "true",
            "exclude_spam": "false",
        }
        if cursor:
            params["cursor"] = cursor

        client = await self._get_client()
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        log.debug("moralis.request", address=address, chain=params["chain"])
        response = await client.get(f"/{address}/nft", params=params)

        if response.is_error:
            detail = response.text
            log.error("moralis.api_error", status=response.status_code, detail=detail[:200])
            raise MoralisAPIError(response.status_code, details=detail)

        return response.json()
