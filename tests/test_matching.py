"""Tests for matching listings and offers to NFTs."""

from nft_portfolio.nftgo.parsing import parse_listing, parse_nft
from nft_portfolio.portfolio.matching import (
    attach_nfts,
    is_listed,
    listed_marketplaces,
    listing_info,
    listings_for_nft,
    offer_price,
    top_offer,
)
from tests.conftest import listing_dto, nft_raw

NFT_1 = parse_nft(nft_raw("1", contract="0xABC"), owner="0xowner")
NFT_2 = parse_nft(nft_raw("2", contract="0xABC"), owner="0xowner")

LISTINGS = [
    parse_listing(listing_dto("o1", contract="0xabc", token_id="1", market_id="seaport")),
    parse_listing(listing_dto("l1", contract="0xAbC", token_id="1", market_id="looks-rare")),
    parse_listing(listing_dto("o2", contract="0xabc", token_id="1", market_id="seaport")),
    parse_listing(listing_dto("x1", contract="0xabc", token_id="1", status="cancelled")),
    parse_listing(listing_dto("z9", contract="0xdef", token_id="1")),
]


def test_contract_case_is_ignored() -> None:
    assert [listing.id for listing in listings_for_nft(LISTINGS, NFT_1)] == ["o1", "l1", "o2"]


def test_listing_info_and_is_listed() -> None:
    assert listing_info(LISTINGS, NFT_1).id == "o1"
    assert listing_info(LISTINGS, NFT_2) is None
    assert is_listed(LISTINGS, NFT_1)
    assert not is_listed(LISTINGS, NFT_2)


def test_listed_marketplaces_are_unique() -> None:
    assert listed_marketplaces(LISTINGS, NFT_1) == ["opensea", "looksrare"]
    assert listed_marketplaces(LISTINGS, NFT_2) == []


def test_attach_nfts() -> None:
    attached = attach_nfts(LISTINGS, [NFT_1, NFT_2])

    assert attached[0].nft == NFT_1
    assert attached[-1].nft is None
    assert LISTINGS[0].nft is None


def test_offer_price_shapes() -> None:
    assert offer_price({"price": 1.5}) == 1.5
    assert offer_price({"price": {"amount": "2"}}) == 2.0
    assert offer_price({"price": {"amount": {"decimal": 0.75}}}) == 0.75
    assert offer_price({"price": "n/a"}) == 0.0
    assert offer_price({}) == 0.0


def test_top_offer() -> None:
    offers = [{"id": "a", "price": 1.0}, {"id": "b", "price": {"amount": {"decimal": 3.0}}}, {"id": "c", "price": 2}]

    assert top_offer(offers)["id"] == "b"
    assert top_offer([]) is None
