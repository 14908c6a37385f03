"""Basic/advanced search mode on top of a listing controller."""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from catalog_listing.errors import ValidationError
from catalog_listing.filters.coercion import criteria_from_form, form_values_from_criteria
from catalog_listing.models.pydantic_models import FilterCriteria
from catalog_listing.services.accumulator import AccumulatedResultSet
from catalog_listing.services.listing_controller import ListingController

logger = logging.getLogger(__name__)


class SearchMode(str, Enum):
    """Which search form a surface displays."""

    BASIC = "basic"
    ADVANCED = "advanced"


class ModeController:
    """Search form state for surfaces with a basic/advanced toggle.

    The last applied advanced filters are kept apart from the live form:
    switching back to basic mode only changes the displayed form, the
    advanced filters stay applied to the query.
    """

    def __init__(self, listing: ListingController) -> None:
        """Initialize with the listing controller to drive.

        Args:
            listing: Controller of the surface.
        """
        self._listing = listing
        self._mode = SearchMode.BASIC
        self._current_advanced_filters: FilterCriteria | None = None
        self._search_term = ""

    @property
    def listing(self) -> ListingController:
        return self._listing

    @property
    def mode(self) -> SearchMode:
        return self._mode

    @property
    def search_term(self) -> str:
        """Text of the basic search box."""
        return self._search_term

    @search_term.setter
    def search_term(self, value: str) -> None:
        self._search_term = value

    @property
    def current_advanced_filters(self) -> FilterCriteria | None:
        """Last advanced filters applied through on_search(), if any."""
        return self._current_advanced_filters

    @property
    def has_active_advanced_filters(self) -> bool:
        return self._current_advanced_filters is not None

    async def initialize(self, url_query: str = "") -> AccumulatedResultSet:
        """Initialize the listing from the URL and seed the search form.

        URL criteria beyond the free-text query become the applied advanced
        filters, so a later basic search keeps them.
        """
        result = await self._listing.initialize(url_query)
        criteria = self._listing.criteria
        self._search_term = criteria.search or ""
        if criteria.model_copy(update={"search": None}) != self._listing.defaults.model_copy(
            update={"search": None}
        ):
            self._current_advanced_filters = criteria
        return result

    def show_basic(self) -> None:
        self._mode = SearchMode.BASIC

    def show_advanced(self) -> None:
        self._mode = SearchMode.ADVANCED

    def toggle_mode(self) -> SearchMode:
        """Switch between the basic and advanced form."""
        self._mode = SearchMode.ADVANCED if self._mode is SearchMode.BASIC else SearchMode.BASIC
        return self._mode

    def form_initial_values(self) -> dict[str, Any]:
        """Values to prefill the advanced form with.

        Uses the last applied advanced filters, or the surface defaults.
        """
        criteria = self._current_advanced_filters or self._listing.defaults
        return form_values_from_criteria(criteria, self._listing.facet_keys)

    async def on_basic_search(self, term: str | None = None) -> AccumulatedResultSet:
        """Run the basic search.

        The active advanced filters (or the defaults) stay applied; only the
        free-text query is replaced.

        Args:
            term: Search text. Uses the current search box text if None.
        """
        if term is not None:
            self._search_term = term
        base = self._current_advanced_filters or self._listing.defaults
        criteria = base.model_copy(update={"search": self._search_term.strip() or None})
        return await self._listing.set_filters(criteria)

    async def on_search(self, form_values: Mapping[str, Any]) -> AccumulatedResultSet:
        """Apply advanced form values.

        Tri-state selects arrive as "", "true" or "false" and are coerced
        to unset/True/False. Malformed values (e.g. a non-numeric price)
        put the listing into the error state without fetching.

        Args:
            form_values: Raw advanced form values keyed by parameter name.
        """
        try:
            criteria = criteria_from_form(
                form_values, self._listing.facet_keys, base=self._listing.defaults
            )
        except ValidationError as exc:
            logger.warning("Rejected advanced search form: %s", exc)
            return self._listing.reject(exc)

        self._current_advanced_filters = criteria
        self._search_term = criteria.search or ""
        return await self._listing.set_filters(criteria)

    async def on_clear(self) -> AccumulatedResultSet:
        """Drop the advanced filters and reset the listing to its defaults."""
        self._current_advanced_filters = None
        self._search_term = ""
        return await self._listing.clear()
