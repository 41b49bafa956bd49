"""NFT portfolio proxy and dashboard data layer over the NFTGo API."""

__version__ = "1.0.0"
