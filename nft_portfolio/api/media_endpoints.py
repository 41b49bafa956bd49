"""Media probing, ETH price and health endpoints."""

from typing import Any

import httpx
import structlog
from fastapi import APIRouter, Depends

from nft_portfolio import __version__
from nft_portfolio.api.state import ProxyState, get_state
from nft_portfolio.core.errors import InvalidRequestError, MediaProbeError
from nft_portfolio.utils.media import media_type_from_content_type

log = structlog.get_logger()

router = APIRouter(tags=["Media"])


@router.get("/api/content-type")
async def get_content_type(url: str | None = None, state: ProxyState = Depends(get_state)) -> dict[str, Any]:
    """Content type of a media URL (IPFS links often have no extension).

    Returns:
        ``contentType`` header value and the derived ``mediaType``
    """
    if not url:
        raise InvalidRequestError("URL parameter is required")

    client = await state.media_client()
    try:
        response = await client.head(url, headers={"Accept": "*/*"})
    except httpx.HTTPError as e:
        log.warning("media.content_type_failed", url=url, error=str(e))
        raise MediaProbeError("Failed to fetch content type") from e

    if response.is_error:
        raise MediaProbeError(
            f"Failed to fetch content type: {response.status_code}",
            status_code=response.status_code,
        )

    content_type = response.headers.get("content-type")
    return {
        "contentType": content_type,
        "mediaType": media_type_from_content_type(content_type).value,
    }


@router.get("/api/price/eth")
async def get_eth_price(state: ProxyState = Depends(get_state)) -> dict[str, Any]:
    """Current ETH/USD price with fallback."""
    await state.eth_price.get_price()
    return state.eth_price.snapshot()


@router.get("/health")
async def health(state: ProxyState = Depends(get_state)) -> dict[str, Any]:
    return {
        "status": "ok",
        "version": __version__,
        "environment": state.settings.environment.value,
        "api_key_configured": state.client is not None,
        "moralis_configured": state.moralis is not None,
        "bulk_pricing_cache": state.bulk_pricing.cache.get_stats(),
        "maker_orders_cache": state.maker_orders.cache.get_stats(),
    }
