"""Moralis API client and response parsing."""

from nft_portfolio.moralis.client import MoralisClient
from nft_portfolio.moralis.parsing import parse_moralis_attributes, parse_moralis_nft, parse_moralis_nfts

__all__ = [
    "MoralisClient",
    "parse_moralis_attributes",
    "parse_moralis_nft",
    "parse_moralis_nfts",
]
