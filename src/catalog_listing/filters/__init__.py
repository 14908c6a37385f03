"""Filter criteria codec, fingerprinting and form coercion."""

from catalog_listing.filters.codec import decode, encode
from catalog_listing.filters.coercion import (
    criteria_from_form,
    parse_tri_state,
    validate_criteria,
)
from catalog_listing.filters.fingerprint import fingerprint

__all__ = [
    "criteria_from_form",
    "decode",
    "encode",
    "fingerprint",
    "parse_tri_state",
    "validate_criteria",
]
