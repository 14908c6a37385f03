"""Exceptions raised by the listing core and its catalog collaborators."""


class ListingError(Exception):
    """Base class for listing errors."""


class FetchError(ListingError):
    """Raised when the catalog fails to return a page (transport or upstream error)."""


class ValidationError(ListingError):
    """Raised when filter criteria are malformed.

    Invalid criteria are rejected before any fetch and never sent upstream.
    """


class AccumulatorStateError(ListingError):
    """Raised when a page is appended before the first page of a query was stored."""
