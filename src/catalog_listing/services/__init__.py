"""Listing state services for catalog-listing."""

from catalog_listing.services.accumulator import AccumulatedResultSet, ResultAccumulator
from catalog_listing.services.fetch_guard import FetchGuard, FlightKind, FlightToken
from catalog_listing.services.listing_controller import ListingController, ListingView
from catalog_listing.services.mode_controller import ModeController, SearchMode

__all__ = [
    "AccumulatedResultSet",
    "FetchGuard",
    "FlightKind",
    "FlightToken",
    "ListingController",
    "ListingView",
    "ModeController",
    "ResultAccumulator",
    "SearchMode",
]
