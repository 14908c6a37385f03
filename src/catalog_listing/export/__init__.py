"""Export modules."""

from catalog_listing.export.csv_exporter import export_to_csv
from catalog_listing.export.json_exporter import export_to_json

__all__ = ["export_to_csv", "export_to_json"]
