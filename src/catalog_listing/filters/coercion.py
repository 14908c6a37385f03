"""Coercion of raw form and URL values into typed filter criteria."""

from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from catalog_listing.errors import ValidationError
from catalog_listing.models.pydantic_models import (
    FilterCriteria,
    SearchField,
    SortBy,
    SortOrder,
)


def parse_tri_state(value: Any) -> bool | None:
    """Parse a tri-state boolean.

    Handles:
    - True / False -> unchanged
    - "true" / "false" -> True / False
    - None, "" and any other literal -> None (unset)
    """
    if isinstance(value, bool):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def parse_price(name: str, value: Any) -> Decimal | None:
    """Parse a price value from a form or URL.

    Args:
        name: Parameter name, used in the error message.
        value: Raw value (string, number, Decimal or None).

    Returns:
        Decimal price, or None when the value is blank.

    Raises:
        ValidationError: If the value is not a finite, non-negative number.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        price = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"{name} must be a number, got {value!r}") from exc
    if not price.is_finite():
        raise ValidationError(f"{name} must be a finite number, got {value!r}")
    if price < 0:
        raise ValidationError(f"{name} must not be negative, got {value!r}")
    return price


def parse_enum(enum_cls: type, value: Any) -> Any:
    """Convert a raw value to an enum member, or None if it is not a member."""
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None


def build_criteria(values: Mapping[str, Any]) -> FilterCriteria:
    """Validate a mapping of FilterCriteria attributes.

    Raises:
        ValidationError: If pydantic rejects the values.
    """
    try:
        return FilterCriteria.model_validate(dict(values))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid filter criteria: {exc}") from exc


def validate_criteria(criteria: FilterCriteria) -> FilterCriteria:
    """Check cross-field constraints the model cannot express on its own.

    Raises:
        ValidationError: If the price range is inverted.
    """
    if (
        criteria.min_price is not None
        and criteria.max_price is not None
        and criteria.min_price > criteria.max_price
    ):
        raise ValidationError(
            f"minPrice ({criteria.min_price}) must not exceed maxPrice ({criteria.max_price})"
        )
    return criteria


def criteria_from_form(
    values: Mapping[str, Any],
    facet_keys: Iterable[str] = (),
    base: FilterCriteria | None = None,
) -> FilterCriteria:
    """Turn raw advanced-search form values into FilterCriteria.

    Blank strings mean "not set". Tri-state selects submit "", "true" or
    "false". Sort fields fall back to the base criteria when missing or
    unknown.

    Args:
        values: Form values keyed by parameter name (camelCase).
        facet_keys: Names of the domain facet fields on the form.
        base: Criteria supplying sort defaults and base filters.

    Returns:
        Typed FilterCriteria.

    Raises:
        ValidationError: If a price is malformed.
    """
    base = base or FilterCriteria()
    search = values.get("search")
    fields: dict[str, Any] = {
        "search": search.strip() if isinstance(search, str) else None,
        "search_fields": parse_enum(SearchField, values.get("searchFields")),
        "min_price": parse_price("minPrice", values.get("minPrice")),
        "max_price": parse_price("maxPrice", values.get("maxPrice")),
        "is_sellable": parse_tri_state(values.get("isSellable")),
        "is_tradeable": parse_tri_state(values.get("isTradeable")),
        "sort_by": parse_enum(SortBy, values.get("sortBy")) or base.sort_by,
        "sort_order": parse_enum(SortOrder, values.get("sortOrder")) or base.sort_order,
        "base_filters": dict(base.base_filters),
    }

    category_fields: dict[str, str] = {}
    for key in facet_keys:
        raw = values.get(key)
        if raw is None:
            continue
        text = str(raw).strip()
        if text:
            category_fields[key] = text
    fields["category_fields"] = category_fields

    return build_criteria(fields)


def form_values_from_criteria(
    criteria: FilterCriteria, facet_keys: Iterable[str] = ()
) -> dict[str, Any]:
    """Render criteria back into advanced-form values (prefill).

    Unset values render as blank strings; tri-state values as "true"/"false".
    """
    values: dict[str, Any] = {
        "search": criteria.search or "",
        "searchFields": (criteria.search_fields or SearchField.ALL).value,
        "minPrice": format(criteria.min_price, "f") if criteria.min_price is not None else "",
        "maxPrice": format(criteria.max_price, "f") if criteria.max_price is not None else "",
        "isSellable": _tri_state_text(criteria.is_sellable),
        "isTradeable": _tri_state_text(criteria.is_tradeable),
        "sortBy": criteria.sort_by.value,
        "sortOrder": criteria.sort_order.value,
    }
    for key in facet_keys:
        values[key] = criteria.category_fields.get(key, "")
    return values


def _tri_state_text(value: bool | None) -> str:
    if value is None:
        return ""
    return "true" if value else "false"

