"""NFTGo proxy API endpoints.

Provides REST endpoints for:
- Owned NFTs, NFT detail and price estimates
- Bulk pricing (cached, rate limited, retried)
- Orders by maker and offers feeds
- Trade calls: create/cancel listings, fulfill offers, post orders
"""

from typing import Any

import httpx
import structlog
from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from nft_portfolio.api.state import ProxyState, get_state
from nft_portfolio.core.errors import InvalidRequestError, NFTGoAPIError
from nft_portfolio.nftgo.orders import normalize_cancel_orders, prepare_post_order, validate_actions
from nft_portfolio.utils.resilience import call_with_retry

log = structlog.get_logger()

# Create router
router = APIRouter(prefix="/api/nftgo", tags=["NFTGo"])


class PricingParam(BaseModel):
    """One NFT to price; numeric token ids are accepted as strings."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    contract_address: str
    token_id: str


class BulkPricingRequest(BaseModel):
    """Request model for bulk pricing."""

    params: list[PricingParam]
    with_weights: bool = False


class PricingRequest(BaseModel):
    """Request model for the dashboard's ``{nfts: [...]}`` pricing call."""

    nfts: list[dict[str, Any]]


class MakerOrdersRequest(BaseModel):
    """Request model for orders-by-maker."""

    model_config = ConfigDict(populate_by_name=True)

    maker: str = ""
    orderbook: str | None = None
    limit: int = Field(default=100, ge=1, le=1000)
    order_type: str = "listing"
    force_refresh: bool = Field(default=False, alias="forceRefresh")


class OffersFeedRequest(BaseModel):
    """Request model for an NFT's offers feed; extra fields are forwarded."""

    model_config = ConfigDict(extra="allow")

    contract_address: str = ""


class TradeOrdersRequest(BaseModel):
    """Request model for cancel-orders and fulfill-offers."""

    model_config = ConfigDict(extra="allow")

    caller_address: str = ""
    orders: list[Any] = Field(default_factory=list)


class CheckPostOrderResultsRequest(BaseModel):
    """Request model for post-order result polling."""

    model_config = ConfigDict(extra="allow")

    request_ids: list[str]


@router.get("/nfts")
async def get_nfts(
    address: str | None = None,
    limit: int = 20,
    sort_by: str = "receivedTime",
    asc: bool = False,
    cursor: str | None = None,
    state: ProxyState = Depends(get_state),
) -> Any:
    """Get NFTs owned by a wallet.

    Returns:
        NFTGo payload with ``nfts`` and ``next_cursor``
    """
    client = state.require_client()
    if not address:
        raise InvalidRequestError("Address parameter is required")

    return await client.get_address_nfts(address, limit=limit, sort_by=sort_by, asc=asc, cursor=cursor)


@router.get("/nft/detail")
async def get_nft_detail(
    contract: str | None = None,
    token_id: str | None = Query(default=None, alias="tokenId"),
    state: ProxyState = Depends(get_state),
) -> Any:
    """Get one NFT's metadata, unwrapped from ``data`` when present."""
    client = state.require_client()
    if not contract or not token_id:
        raise InvalidRequestError("Missing required parameters: contract and tokenId")

    data = await client.get_nft_info(contract, token_id)
    if isinstance(data, dict) and data.get("data"):
        return data["data"]
    return data


@router.get("/pricing")
async def get_pricing(
    contract: str | None = None,
    token_id: str | None = Query(default=None, alias="tokenId"),
    state: ProxyState = Depends(get_state),
) -> Any:
    client = state.require_client()
    if not contract or not token_id:
        raise InvalidRequestError("Contract and tokenId parameters are required")

    return await client.get_price_estimate(contract, token_id)


@router.post("/pricing")
async def post_pricing(body: PricingRequest, state: ProxyState = Depends(get_state)) -> Any:
    """Bulk pricing for ``{nfts: [{contract, tokenId}]}``, retried on server errors."""
    client = state.require_client()
    payload = {
        "params": [
            {
                "contract_address": nft.get("contract_address") or nft.get("contract"),
                "token_id": str(nft.get("token_id") or nft.get("tokenId") or ""),
            }
            for nft in body.nfts
        ],
        "with_weights": False,
    }

    try:
        return await call_with_retry(
            lambda: client.bulk_pricing(payload),
            state.pricing_retry,
            name="pricing",
        )
    except httpx.TransportError as e:
        raise NFTGoAPIError(500) from e


@router.post("/pricing/v1/bulk-pricing")
async def bulk_pricing(body: BulkPricingRequest, state: ProxyState = Depends(get_state)) -> Any:
    """Bulk pricing through the cached, rate-limited proxy."""
    params = [p.model_dump() for p in body.params]
    return await state.bulk_pricing.handle(params, with_weights=body.with_weights)


@router.post("/trade/orderbook/v1/orders/get-orders-by-maker")
async def get_orders_by_maker(body: MakerOrdersRequest, state: ProxyState = Depends(get_state)) -> Any:
    return await state.maker_orders.handle(
        body.maker,
        orderbook=body.orderbook,
        limit=body.limit,
        order_type=body.order_type,
        force_refresh=body.force_refresh,
    )


@router.post("/orderbook/v1/orders/get-offers-feed-by-nft")
async def get_offers_feed_by_nft(
    body: OffersFeedRequest,
    chain: str | None = None,
    limit: int = 50,
    state: ProxyState = Depends(get_state),
) -> Any:
    client = state.require_client()
    if not body.contract_address:
        raise InvalidRequestError("Invalid request: contract_address is required")

    return await client.get_offers_feed_by_nft(body.model_dump(), chain=chain, limit=limit)


@router.post("/trade/v1/nft/create-listings")
async def create_listings(
    body: dict[str, Any] = Body(...),
    chain: str | None = None,
    state: ProxyState = Depends(get_state),
) -> Any:
    """Create listing actions for the wallet to sign."""
    client = state.require_client()
    data = await client.create_listings(body, chain=chain)

    if isinstance(data, dict) and data.get("code") == "SUCCESS":
        valid = validate_actions(data.get("data"))
        log.info("nftgo.create_listings", valid_actions=valid)
    else:
        log.warning("nftgo.create_listings_unexpected", code=data.get("code") if isinstance(data, dict) else None)
    return data


@router.post("/trade/v1/nft/cancel-orders")
async def cancel_orders(
    body: TradeOrdersRequest,
    chain: str | None = None,
    state: ProxyState = Depends(get_state),
) -> Any:
    client = state.require_client()
    if not body.caller_address or not body.orders:
        raise InvalidRequestError("Invalid request: caller_address and orders array are required")

    payload = body.model_dump()
    payload["orders"] = normalize_cancel_orders(body.orders)
    log.info("nftgo.cancel_orders", caller=body.caller_address, orders=len(payload["orders"]))
    return await client.cancel_orders(payload, chain=chain)


@router.post("/trade/v1/nft/fulfill-offers")
async def fulfill_offers(
    body: TradeOrdersRequest,
    chain: str | None = None,
    state: ProxyState = Depends(get_state),
) -> Any:
    client = state.require_client()
    if not body.caller_address or not body.orders:
        raise InvalidRequestError("Invalid request: caller_address and orders array are required")

    return await client.fulfill_offers(body.model_dump(), chain=chain)


@router.post("/trade/v1/nft/post-order")
async def post_order(
    body: dict[str, Any] = Body(...),
    chain: str | None = None,
    state: ProxyState = Depends(get_state),
) -> JSONResponse:
    """Submit a signed order; NFTGo's status code is passed through."""
    client = state.require_client()
    payload = prepare_post_order(body, require_signature=state.settings.is_production)

    status, data = await client.post_order(payload, chain=chain)
    log.info("nftgo.post_order", status=status)
    return JSONResponse(content=data, status_code=status)


@router.post("/trade/v1/nft/check-post-order-results")
async def check_post_order_results(
    body: CheckPostOrderResultsRequest,
    chain: str | None = None,
    state: ProxyState = Depends(get_state),
) -> Any:
    client = state.require_client()
    return await client.check_post_order_results(body.model_dump(), chain=chain)


# Must stay last: catches every other /trade/... path
@router.post("/trade/{action:path}")
async def legacy_trade(
    action: str,
    body: dict[str, Any] = Body(...),
    chain: str | None = None,
    state: ProxyState = Depends(get_state),
) -> Any:
    """Legacy trade dispatcher (``/trade/listings``, ``/trade/cancel-orders``, ...)."""
    client = state.require_client()
    return await client.trade_action(action.strip("/"), body, chain=chain)
