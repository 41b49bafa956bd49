"""ETH/USD quotation from DIA, cached with a static fallback."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

log = structlog.get_logger()

DIA_ETH_QUOTATION_URL = (
    "https://api.diadata.org/v1/assetQuotation/Ethereum/0x0000000000000000000000000000000000000000"
)


class EthPriceFeed:
    """Fetch and cache the ETH price in USD."""

    def __init__(
        self,
        url: str = DIA_ETH_QUOTATION_URL,
        ttl: float = 300.0,
        fallback: float = 2500.0,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize price feed.

        Args:
            url: DIA quotation endpoint
            ttl: Seconds a fetched price stays fresh
            fallback: Price used when nothing was ever fetched
            timeout: Request timeout in seconds
            transport: Custom httpx transport
            clock: Time source
        """
        self.url = url
        self.ttl = ttl
        self.fallback = fallback
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._client: httpx.AsyncClient | None = None

        self.price: float | None = None
        self.error: str | None = None
        self.last_updated: datetime | None = None
        self._fetched_at: float | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _is_fresh(self) -> bool:
        return self._fetched_at is not None and self._clock() - self._fetched_at < self.ttl

    async def get_price(self) -> float:
        """Current ETH price, or the last good one (else the fallback) on failure."""
        if self.price is not None and self._is_fresh():
            return self.price

        try:
            client = await self._get_client()
            response = await client.get(self.url)
            if response.is_error:
                raise ValueError(f"Failed to fetch ETH price: {response.status_code}")

            data = response.json()
            price = data.get("Price") if isinstance(data, dict) else None
            if not price:
                raise ValueError("Invalid price data received")

            self.price = float(price)
            self.error = None
            self._fetched_at = self._clock()
            self.last_updated = datetime.now(UTC)
            log.info("eth_price.updated", price=self.price)
            return self.price

        except (httpx.HTTPError, ValueError) as e:
            self.error = str(e)
            log.warning("eth_price.fetch_failed", error=self.error, fallback=self.fallback)
            return self.price if self.price is not None else self.fallback

    def snapshot(self) -> dict[str, Any]:
        return {
            "ethPrice": self.price if self.price is not None else self.fallback,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "error": self.error,
        }
