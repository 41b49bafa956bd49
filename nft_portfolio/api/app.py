"""FastAPI application factory for the NFTGo proxy."""

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nft_portfolio import __version__
from nft_portfolio.api.media_endpoints import router as media_router
from nft_portfolio.api.moralis_endpoints import router as moralis_router
from nft_portfolio.api.nftgo_endpoints import router as nftgo_router
from nft_portfolio.api.state import ProxyState
from nft_portfolio.config import NFTGoSettings, get_settings
from nft_portfolio.core.errors import NFTPortfolioError
from nft_portfolio.moralis.client import MoralisClient
from nft_portfolio.nftgo.client import NFTGoClient
from nft_portfolio.portfolio.eth_price import EthPriceFeed

log = structlog.get_logger()


async def _portfolio_error_handler(request: Request, exc: NFTPortfolioError) -> JSONResponse:
    log.warning(
        "api.request_failed",
        path=request.url.path,
        status=exc.status_code,
        error=exc.error,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    log.info("api.invalid_request", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": jsonable_errors(exc)},
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("api.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    return [
        {"loc": ".".join(str(part) for part in err.get("loc", ())), "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]


def create_app(
    settings: NFTGoSettings | None = None,
    client: NFTGoClient | None = None,
    eth_price: EthPriceFeed | None = None,
    media_transport: httpx.AsyncBaseTransport | None = None,
    moralis: MoralisClient | None = None,
) -> FastAPI:
    """
    Build the proxy application.

    Args:
        settings: Settings override (defaults to ``get_settings()``)
        client: NFTGo client override (tests pass one over MockTransport)
        eth_price: ETH price feed override
        media_transport: httpx transport for content-type probes
        moralis: Moralis client override
    """
    settings = settings or get_settings()
    state = ProxyState.build(
        settings,
        client=client,
        eth_price=eth_price,
        media_transport=media_transport,
        moralis=moralis,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(
            "api.startup",
            environment=settings.environment.value,
            api_key_configured=state.client is not None,
            moralis_configured=state.moralis is not None,
        )
        yield
        log.info("api.shutdown")
        await state.close()

    app = FastAPI(
        title="NFT Portfolio Proxy",
        description="NFTGo and Moralis proxy with caching, rate limiting and retry",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.proxy = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NFTPortfolioError, _portfolio_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(nftgo_router)
    app.include_router(moralis_router)
    app.include_router(media_router)

    return app
