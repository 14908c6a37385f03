"""CLI interface for catalog-listing."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from catalog_listing import __version__
from catalog_listing.catalog import CatalogClient, GraphQLCatalog, InMemoryCatalog, load_catalog_items
from catalog_listing.config import ListingConfig, SurfaceConfig, get_surface, load_listing_config
from catalog_listing.errors import ValidationError
from catalog_listing.export import export_to_csv, export_to_json
from catalog_listing.export.json_exporter import item_to_dict
from catalog_listing.filters import criteria_from_form, decode, encode, fingerprint
from catalog_listing.models.pydantic_models import ListingStatus, SearchField, SortBy, SortOrder
from catalog_listing.services import AccumulatedResultSet, ListingController

app = typer.Typer(
    name="catalog-listing",
    help="Filterable, paginated catalog listings driven by URL query strings",
    add_completion=False,
)
console = Console()


def output_json(data: Any) -> None:
    """Output JSON to stdout (for programmatic consumption)."""
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"catalog-listing version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable debug logging.",
    ),
) -> None:
    """Filterable, paginated catalog listings."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)


def load_config_or_exit(config_path: Path | None) -> ListingConfig:
    """Load the listing config, exiting with an error message on failure."""
    try:
        return load_listing_config(config_path)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


def get_surface_or_exit(config: ListingConfig, name: str) -> SurfaceConfig:
    """Look up a surface, exiting with an error message if unknown."""
    try:
        return get_surface(config, name)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        raise typer.Exit(1) from e


def parse_facets(values: list[str]) -> dict[str, str]:
    """Parse repeated KEY=VALUE facet options."""
    facets: dict[str, str] = {}
    for value in values:
        key, sep, text = value.partition("=")
        if not sep or not key.strip():
            console.print(f"[red]Invalid facet '{value}', expected KEY=VALUE[/red]")
            raise typer.Exit(1)
        facets[key.strip()] = text
    return facets


@app.command(name="encode")
def encode_command(
    search: str | None = typer.Option(None, "--search", "-s", help="Free-text search."),
    search_fields: SearchField | None = typer.Option(
        None, "--search-fields", help="Fields the search applies to."
    ),
    min_price: str | None = typer.Option(None, "--min-price", help="Minimum price."),
    max_price: str | None = typer.Option(None, "--max-price", help="Maximum price."),
    sellable: str | None = typer.Option(
        None, "--sellable", help="Sellable filter: true, false or empty for any."
    ),
    tradeable: str | None = typer.Option(
        None, "--tradeable", help="Tradeable filter: true, false or empty for any."
    ),
    sort_by: SortBy | None = typer.Option(None, "--sort-by", help="Sort field."),
    sort_order: SortOrder | None = typer.Option(None, "--sort-order", help="Sort direction."),
    facet: list[str] = typer.Option(
        [],
        "--facet",
        "-f",
        help="Domain facet as KEY=VALUE (repeatable).",
    ),
    surface_name: str | None = typer.Option(
        None,
        "--surface",
        help="Surface whose defaults and facets apply.",
    ),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to surfaces YAML."),
) -> None:
    """Build a URL query string from filter options."""
    facets = parse_facets(facet)
    defaults = None
    facet_keys: list[str] = list(facets)
    if surface_name is not None:
        surface = get_surface_or_exit(load_config_or_exit(config_path), surface_name)
        defaults = surface.default_criteria()
        facet_keys = surface.facet_keys
        unknown = sorted(set(facets) - set(facet_keys))
        if unknown:
            console.print(
                f"[yellow]Ignoring facets not used by '{surface_name}': {', '.join(unknown)}[/yellow]"
            )

    form_values: dict[str, Any] = {
        "search": search,
        "searchFields": search_fields.value if search_fields else None,
        "minPrice": min_price,
        "maxPrice": max_price,
        "isSellable": sellable,
        "isTradeable": tradeable,
        "sortBy": sort_by.value if sort_by else None,
        "sortOrder": sort_order.value if sort_order else None,
        **facets,
    }

    try:
        criteria = criteria_from_form(form_values, facet_keys, base=defaults)
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    print(encode(criteria, defaults))


@app.command(name="decode")
def decode_command(
    query: str = typer.Argument(..., help="URL query string (with or without '?')."),
    surface_name: str = typer.Option(
        "characters",
        "--surface",
        help="Surface whose defaults and facets apply.",
    ),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to surfaces YAML."),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON (for programmatic consumption).",
    ),
) -> None:
    """Decode a URL query string into filter criteria."""
    surface = get_surface_or_exit(load_config_or_exit(config_path), surface_name)
    try:
        criteria = decode(query, surface.default_criteria(), surface.facet_keys)
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    filters = criteria.to_request_filters()
    query_fingerprint = fingerprint(criteria)

    if json_output:
        output_json({
            "surface": surface.name,
            "filters": filters,
            "fingerprint": query_fingerprint,
            "query": encode(criteria, surface.default_criteria()),
        })
        return

    table = Table(title=f"Filters for {surface.name}")
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", style="white")
    for key, value in filters.items():
        table.add_row(key, str(value))
    console.print(table)
    console.print(f"[dim]Fingerprint: {query_fingerprint}[/dim]")


@app.command()
def surfaces(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to surfaces YAML."),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON (for programmatic consumption).",
    ),
) -> None:
    """List the configured listing surfaces."""
    config = load_config_or_exit(config_path)

    if json_output:
        output_json({
            "endpoint": config.catalog.endpoint,
            "surfaces": [
                {
                    "name": surface.name,
                    "title": surface.title,
                    "page_size": surface.page_size,
                    "facet_keys": surface.facet_keys,
                    "base_filters": surface.base_filters,
                }
                for surface in config.surfaces.values()
            ],
        })
        return

    if not config.surfaces:
        console.print("[yellow]No surfaces configured.[/yellow]")
        return

    table = Table(title=f"Listing Surfaces ({len(config.surfaces)})")
    table.add_column("Name", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Page Size", style="green", justify="right")
    table.add_column("Facets", style="yellow")
    table.add_column("GraphQL", style="magenta", justify="center")

    for surface in config.surfaces.values():
        table.add_row(
            surface.name,
            surface.title or "-",
            str(surface.page_size),
            ", ".join(surface.facet_keys) or "-",
            "[green]Y[/green]" if surface.graphql else "[red]N[/red]",
        )

    console.print(table)


def build_catalog(
    config: ListingConfig,
    surface: SurfaceConfig,
    items_path: Path | None,
    endpoint: str | None,
) -> CatalogClient:
    """Create the catalog a browse session reads from."""
    if items_path is not None:
        try:
            items = load_catalog_items(items_path)
        except FileNotFoundError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1) from e
        return InMemoryCatalog(items, facet_keys=surface.facet_keys)

    if surface.graphql is None:
        console.print(f"[red]Surface '{surface.name}' has no GraphQL query; use --items.[/red]")
        raise typer.Exit(1)

    settings = config.catalog
    if endpoint is not None:
        settings = settings.model_copy(update={"endpoint": endpoint})
    return GraphQLCatalog(settings, surface.graphql)


async def run_browse(
    catalog: CatalogClient,
    surface: SurfaceConfig,
    query: str,
    pages: int,
) -> ListingController:
    """Initialize a listing from the query string and load up to `pages` pages.

    Args:
        catalog: Catalog to read from.
        surface: Surface configuration.
        query: URL query string.
        pages: Number of pages to load in total.

    Returns:
        The controller after the last page settled.
    """
    controller = ListingController.for_surface(catalog, surface)
    try:
        await controller.initialize(query)
        for _ in range(pages - 1):
            if controller.status is not ListingStatus.READY or not controller.has_more:
                break
            await controller.load_more()
    finally:
        await catalog.aclose()
    return controller


def _item_value(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _flag(value: Any) -> str:
    if value is None:
        return "-"
    return "[green]Y[/green]" if value else "[red]N[/red]"


def render_items(result_set: AccumulatedResultSet, title: str) -> None:
    """Print loaded items as a rich table."""
    table = Table(title=f"{title} ({len(result_set)} of {result_set.total})")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white", max_width=40)
    table.add_column("Price", style="green", justify="right")
    table.add_column("Sell", style="magenta", justify="center")
    table.add_column("Trade", style="magenta", justify="center")

    for item in result_set.items:
        data = item_to_dict(item)
        price = data.get("price")
        table.add_row(
            str(data.get("id", "-")),
            str(data.get("name") or "-")[:40],
            str(price) if price is not None else "-",
            _flag(_item_value(data, "is_sellable", "isSellable")),
            _flag(_item_value(data, "is_tradeable", "isTradeable")),
        )

    console.print(table)


@app.command()
def browse(
    surface_name: str = typer.Argument(..., help="Surface to browse (characters, galleries, ...)."),
    query: str = typer.Option("", "--query", "-q", help="URL query string to start from."),
    pages: int = typer.Option(1, "--pages", "-p", min=1, help="Number of pages to load."),
    items_path: Path | None = typer.Option(
        None,
        "--items",
        "-i",
        help="JSON file of catalog items to browse instead of the GraphQL endpoint.",
    ),
    endpoint: str | None = typer.Option(None, "--endpoint", help="Override the GraphQL endpoint."),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to surfaces YAML."),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON (for programmatic consumption).",
    ),
    export_path: Path | None = typer.Option(
        None,
        "--export",
        "-o",
        help="Write loaded items to a .csv or .json file.",
    ),
) -> None:
    """Browse a listing surface page by page."""
    if export_path is not None and export_path.suffix not in (".csv", ".json"):
        console.print(f"[red]Unknown export format: {export_path.suffix}. Use .csv or .json.[/red]")
        raise typer.Exit(1)

    config = load_config_or_exit(config_path)
    surface = get_surface_or_exit(config, surface_name)
    catalog = build_catalog(config, surface, items_path, endpoint)

    controller = asyncio.run(run_browse(catalog, surface, query, pages))
    result_set = controller.result_set

    if controller.status is ListingStatus.ERROR:
        # Items loaded before a load-more failure are still reported
        if json_output:
            output_json({
                "success": False,
                "error": str(controller.error),
                "phase": controller.error_phase.value if controller.error_phase else None,
                "count": len(result_set),
            })
        else:
            console.print(f"[red]Error: {controller.error}[/red]")
            if len(result_set):
                render_items(result_set, surface.title or surface.name)
        raise typer.Exit(1)

    if export_path is not None:
        if export_path.suffix == ".csv":
            export_to_csv(result_set, export_path)
        else:
            export_to_json(result_set, export_path)

    if json_output:
        output_json({
            "surface": surface.name,
            "query": controller.query_string,
            "fingerprint": result_set.fingerprint,
            "count": len(result_set),
            "total": result_set.total,
            "has_more": result_set.has_more,
            "items": [item_to_dict(item) for item in result_set.items],
        })
        return

    if not len(result_set):
        console.print("[yellow]No items found.[/yellow]")
        return

    render_items(result_set, surface.title or surface.name)
    if result_set.has_more:
        console.print(f"[dim]Showing {len(result_set)} of {result_set.total} items[/dim]")
    if export_path is not None:
        console.print(f"[green]Export complete: {export_path}[/green]")


if __name__ == "__main__":
    app()
