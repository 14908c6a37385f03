"""JSON export of accumulated listing results."""

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TextIO

from pydantic import BaseModel

from catalog_listing.services.accumulator import AccumulatedResultSet


def item_to_dict(item: Any) -> dict[str, Any]:
    """Convert a listing item to a JSON-serializable dictionary.

    Pydantic models are dumped in JSON mode so prices and timestamps come
    out as strings. Mappings are copied as they are.

    Args:
        item: CatalogItem (or other pydantic model) or mapping.

    Returns:
        Dictionary representation of the item.
    """
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json")
    if isinstance(item, Mapping):
        return dict(item)
    raise TypeError(f"Cannot export item of type {type(item).__name__}")


def export_to_json(
    result_set: AccumulatedResultSet,
    output: Path | TextIO | None = None,
    indent: int = 2,
) -> str:
    """Export the loaded items of a result set to JSON.

    Args:
        result_set: Accumulated result set to export.
        output: Optional file path or file-like object. If None, returns string.
        indent: JSON indentation level.

    Returns:
        JSON string if output is None, empty string otherwise.
    """
    data = {
        "count": len(result_set),
        "total": result_set.total,
        "has_more": result_set.has_more,
        "items": [item_to_dict(item) for item in result_set.items],
    }

    if output is None:
        return json.dumps(data, indent=indent, ensure_ascii=False, default=str)

    if isinstance(output, Path):
        with open(output, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, ensure_ascii=False, default=str)
        return ""

    json.dump(data, output, indent=indent, ensure_ascii=False, default=str)
    return ""
