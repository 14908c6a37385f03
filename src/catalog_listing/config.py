"""YAML configuration loader for listing surfaces and the catalog endpoint."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog_listing.filters.coercion import criteria_from_form
from catalog_listing.models.pydantic_models import RESERVED_PARAMS, FilterCriteria

CONFIG_ENV_VAR = "CATALOG_LISTING_CONFIG"


class CatalogSettings(BaseModel):
    """Connection settings for the remote catalog."""

    endpoint: str = Field("http://localhost:3000/graphql", description="GraphQL endpoint URL")
    timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")
    max_retries: int = Field(3, ge=1, description="Attempts per page on transport errors")
    retry_delay: float = Field(1.0, ge=0, description="Seconds between attempts")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra request headers")

    model_config = ConfigDict(frozen=True)


class GraphQLQueryConfig(BaseModel):
    """GraphQL document and response shape for one surface."""

    query: str = Field(..., description="Query taking a $filters variable")
    root_field: str = Field(..., description="Field under data holding the page")
    items_field: str = Field(..., description="Field of the page holding the items")
    allowed_filters: list[str] | None = Field(
        None, description="Filter keys the upstream input type accepts (None = all)"
    )

    model_config = ConfigDict(frozen=True)


class SurfaceConfig(BaseModel):
    """Configuration of one listing surface (characters, galleries, ...)."""

    name: str
    title: str = ""
    page_size: int = Field(12, ge=1, le=100, description="Results per page")
    facet_keys: list[str] = Field(
        default_factory=list, description="Domain facet URL parameters (species, gender, ...)"
    )
    defaults: dict[str, Any] = Field(
        default_factory=dict, description="Default criteria as URL/form values (camelCase)"
    )
    base_filters: dict[str, Any] = Field(
        default_factory=dict, description="Fixed scoping filters merged into every request"
    )
    dedupe_items: bool = Field(
        True, description="Skip appended items whose id was already loaded"
    )
    graphql: GraphQLQueryConfig | None = None

    model_config = ConfigDict(frozen=True)

    @field_validator("facet_keys")
    @classmethod
    def _facets_not_reserved(cls, value: list[str]) -> list[str]:
        clashes = sorted(key for key in value if key in RESERVED_PARAMS)
        if clashes:
            raise ValueError(f"facet keys clash with reserved parameters: {', '.join(clashes)}")
        return value

    def default_criteria(self) -> FilterCriteria:
        """Build the surface's default FilterCriteria.

        Raises:
            ValidationError: If the configured defaults are malformed.
        """
        base = FilterCriteria(base_filters=dict(self.base_filters))
        return criteria_from_form(self.defaults, self.facet_keys, base=base)


class ListingConfig(BaseModel):
    """Complete listing configuration."""

    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    surfaces: dict[str, SurfaceConfig] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


def _get_default_config_path() -> Path:
    """Get the config path from the environment or relative to project root."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path(__file__).parent.parent.parent / "config" / "surfaces.yaml"


def _load_raw_config(path: Path | None = None) -> dict[str, Any]:
    """Load raw YAML config from path.

    Args:
        path: Path to YAML config file. If None, uses the default location.

    Returns:
        Raw config dictionary.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If YAML parsing fails.
    """
    if path is None:
        path = _get_default_config_path()

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        raw_config: dict[str, Any] | None = yaml.safe_load(f)

    return raw_config if raw_config is not None else {}


def load_listing_config(path: Path | None = None) -> ListingConfig:
    """Load and validate the listing configuration from YAML.

    Args:
        path: Path to YAML config file. If None, uses $CATALOG_LISTING_CONFIG
            or config/surfaces.yaml.

    Returns:
        Validated ListingConfig instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If YAML parsing fails.
        pydantic.ValidationError: If config doesn't match expected schema.
    """
    raw_config = _load_raw_config(path)

    surfaces = {}
    for name, surface_dict in (raw_config.get("surfaces") or {}).items():
        surfaces[name] = SurfaceConfig.model_validate({"name": name, **(surface_dict or {})})

    return ListingConfig(
        catalog=CatalogSettings.model_validate(raw_config.get("catalog") or {}),
        surfaces=surfaces,
    )


def get_surface(config: ListingConfig, name: str) -> SurfaceConfig:
    """Look up a surface by name.

    Raises:
        KeyError: If the surface is not configured.
    """
    try:
        return config.surfaces[name]
    except KeyError:
        known = ", ".join(sorted(config.surfaces)) or "none"
        raise KeyError(f"Unknown surface '{name}' (configured: {known})") from None
