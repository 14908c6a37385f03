"""Catalog collaborators serving listing pages."""

from catalog_listing.catalog.base import CatalogClient
from catalog_listing.catalog.graphql import GraphQLCatalog
from catalog_listing.catalog.in_memory import InMemoryCatalog, load_catalog_items

__all__ = [
    "CatalogClient",
    "GraphQLCatalog",
    "InMemoryCatalog",
    "load_catalog_items",
]
