"""Moralis proxy endpoint: wallet NFTs, spam flags included."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from nft_portfolio.api.state import ProxyState, get_state
from nft_portfolio.core.errors import InvalidRequestError

router = APIRouter(prefix="/api/moralis", tags=["Moralis"])


@router.get("/nfts")
async def get_nfts(
    address: str | None = None,
    chain_id: str = Query(default="1", alias="chainId"),
    cursor: str | None = None,
    state: ProxyState = Depends(get_state),
) -> Any:
    """Get NFTs owned by a wallet from Moralis.

    Returns:
        Moralis payload with ``result`` and ``cursor``
    """
    client = state.require_moralis()
    if not address:
        raise InvalidRequestError("Wallet address parameter is required")

    return await client.get_wallet_nfts(address, chain_id=chain_id, cursor=cursor)
