"""CSV export of accumulated listing results."""

import csv
import json
from collections.abc import Mapping
from io import StringIO
from pathlib import Path
from typing import Any, TextIO

from catalog_listing.export.json_exporter import item_to_dict
from catalog_listing.services.accumulator import AccumulatedResultSet

# Leading columns when present; remaining keys follow in first-seen order
PREFERRED_COLUMNS = [
    "id",
    "name",
    "price",
    "is_sellable",
    "is_tradeable",
    "created_at",
    "updated_at",
]


def item_to_row(item: Any) -> dict[str, str]:
    """Convert a listing item to a flat CSV row.

    Nested mappings (such as CatalogItem.attributes) are flattened into
    their own columns. Lists are written as JSON.

    Args:
        item: CatalogItem (or other pydantic model) or mapping.

    Returns:
        Dictionary with column names as keys.
    """
    row: dict[str, str] = {}
    for key, value in item_to_dict(item).items():
        if isinstance(value, Mapping):
            for sub_key, sub_value in value.items():
                row.setdefault(str(sub_key), _cell(sub_value))
        else:
            row[key] = _cell(value)
    return row


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _columns(rows: list[dict[str, str]]) -> list[str]:
    seen = {key for row in rows for key in row}
    columns = [column for column in PREFERRED_COLUMNS if column in seen]
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


def export_to_csv(
    result_set: AccumulatedResultSet,
    output: Path | TextIO | None = None,
) -> str:
    """Export the loaded items of a result set to CSV.

    Args:
        result_set: Accumulated result set to export.
        output: Optional file path or file-like object. If None, returns string.

    Returns:
        CSV string if output is None, empty string otherwise.
    """
    rows = [item_to_row(item) for item in result_set.items]
    columns = _columns(rows)

    if output is None:
        buffer = StringIO()
        writer = csv.DictWriter(buffer, fieldnames=columns, restval="")
        writer.writeheader()
        writer.writerows(rows)
        return buffer.getvalue()

    if isinstance(output, Path):
        with open(output, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=columns, restval="")
            writer.writeheader()
            writer.writerows(rows)
        return ""

    writer = csv.DictWriter(output, fieldnames=columns, restval="")
    writer.writeheader()
    writer.writerows(rows)
    return ""
