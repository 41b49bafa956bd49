"""Exception hierarchy for the proxy service and portfolio layer.

Every error carries the HTTP status the proxy answers with and a short
client-facing message, so route handlers can simply raise.
"""

from __future__ import annotations

from typing import Any


class NFTPortfolioError(Exception):
    """Base exception for all NFT portfolio errors."""

    status_code: int = 500

    def __init__(self, error: str, details: Any = None) -> None:
        super().__init__(error)
        self.error = error
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a JSON response body."""
        body: dict[str, Any] = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class ConfigurationError(NFTPortfolioError):
    """Raised when required configuration (e.g. the API key) is missing."""

    status_code = 500


class InvalidRequestError(NFTPortfolioError):
    """Raised when a request body or query fails validation."""

    status_code = 400


class ListingError(NFTPortfolioError):
    """Raised when a listing operation is rejected."""

    status_code = 400


class NFTGoAPIError(NFTPortfolioError):
    """Raised when the NFTGo API answers with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        details: Any = None,
        error: str | None = None,
    ) -> None:
        super().__init__(error or f"NFTGo API error: {status_code}", details)
        self.status_code = status_code


class RateLimitExceededError(NFTGoAPIError):
    """Raised when a local limiter or NFTGo itself refuses a request."""

    def __init__(self, error: str = "Rate Limit Exceeded", details: Any = None) -> None:
        super().__init__(429, details, error)


class MediaProbeError(NFTPortfolioError):
    """Raised when probing a media URL for its content type fails."""

    def __init__(self, error: str, status_code: int = 500) -> None:
        super().__init__(error)
        self.status_code = status_code


class MoralisAPIError(NFTPortfolioError):
    """Raised when the Moralis API answers with a non-2xx status."""

    def __init__(self, status_code: int, details: Any = None) -> None:
        super().__init__(f"Moralis API error: {status_code}", details)
        self.status_code = status_code
