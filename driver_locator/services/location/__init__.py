"""Location normalization and auction yard matching."""

from driver_locator.services.location.auction_location_matcher import AuctionLocationMatcher
from driver_locator.services.location.location_normalizer import LocationNormalizer, parse_and_normalize

__all__ = ["AuctionLocationMatcher", "LocationNormalizer", "parse_and_normalize"]
