"""
Web server for the NFT portfolio dashboard's NFTGo proxy.

Serves the /api/nftgo routes, media probing and the ETH price feed.
"""

import structlog
import uvicorn

from nft_portfolio.api import create_app
from nft_portfolio.config import get_settings
from nft_portfolio.utils.logging_config import configure_logging

settings = get_settings()
configure_logging(json_output=settings.log_json, level=settings.log_level)

app = create_app(settings)
log = structlog.get_logger()


def start_web_server(host: str | None = None, port: int | None = None) -> None:
    """Start the web server."""
    host = host or settings.host
    port = port or settings.port

    log.info(
        "web_server.starting",
        url=f"http://localhost:{port}",
        environment=settings.environment.value,
    )
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    start_web_server()
