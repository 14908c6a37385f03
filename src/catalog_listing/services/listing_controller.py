"""Listing controller: filter state, URL mirroring and incremental pagination."""

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from catalog_listing.catalog.base import CatalogClient
from catalog_listing.config import SurfaceConfig
from catalog_listing.errors import FetchError, ValidationError
from catalog_listing.filters.codec import decode, encode
from catalog_listing.filters.coercion import validate_criteria
from catalog_listing.filters.fingerprint import fingerprint
from catalog_listing.models.pydantic_models import FilterCriteria, ListingStatus
from catalog_listing.services.accumulator import (
    AccumulatedResultSet,
    ItemKey,
    ResultAccumulator,
    item_identity,
)
from catalog_listing.services.fetch_guard import FetchGuard, FlightKind, FlightToken

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12


@dataclass(frozen=True)
class ListingView:
    """Everything a rendering layer can observe about a listing."""

    items: tuple[Any, ...]
    total: int
    has_more: bool
    status: ListingStatus
    is_loading: bool
    is_loading_more: bool
    error: Exception | None
    error_phase: FlightKind | None
    query_string: str


class ListingController:
    """Drives one mounted listing surface.

    Keeps the filter criteria, mirrors them into the URL, fetches the first
    page of every query and appends "load more" pages. Responses that
    belong to an outdated query are dropped.

    States: idle -> loading -> ready <-> loading_more -> ready. Any fetch
    failure moves to error; a new query (or, after a load-more failure,
    another load_more) leaves it.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        defaults: FilterCriteria | None = None,
        base_filters: Mapping[str, Any] | None = None,
        facet_keys: Sequence[str] = (),
        page_size: int = DEFAULT_PAGE_SIZE,
        on_url_change: Callable[[str], None] | None = None,
        item_key: ItemKey | None = item_identity,
    ) -> None:
        """Initialize the controller.

        Args:
            catalog: Source of result pages.
            defaults: Criteria used when the URL sets nothing and on clear().
            base_filters: Fixed scoping filters merged into every request.
            facet_keys: Domain facet parameter names the surface understands.
            page_size: Results requested per page.
            on_url_change: Called with the new query string whenever the
                criteria change through set_filters().
            item_key: Item identity used to skip duplicates across pages.
        """
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")

        self._catalog = catalog
        self._base_filters = dict(base_filters or {})
        self._defaults = (defaults or FilterCriteria()).model_copy(
            update={"base_filters": dict(self._base_filters)}
        )
        self._facet_keys = tuple(facet_keys)
        self._page_size = page_size
        self._on_url_change = on_url_change

        self._accumulator = ResultAccumulator(item_key=item_key)
        self._guard = FetchGuard()
        self._criteria = self._defaults
        self._status = ListingStatus.IDLE
        self._error: Exception | None = None
        self._error_phase: FlightKind | None = None
        self._query_string = ""

    @classmethod
    def for_surface(
        cls,
        catalog: CatalogClient,
        surface: SurfaceConfig,
        on_url_change: Callable[[str], None] | None = None,
    ) -> "ListingController":
        """Create a controller configured for a listing surface."""
        return cls(
            catalog,
            defaults=surface.default_criteria(),
            base_filters=surface.base_filters,
            facet_keys=surface.facet_keys,
            page_size=surface.page_size,
            on_url_change=on_url_change,
            item_key=item_identity if surface.dedupe_items else None,
        )

    # ------------------------------------------------------------------
    # observable state
    # ------------------------------------------------------------------
    @property
    def status(self) -> ListingStatus:
        return self._status

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @property
    def defaults(self) -> FilterCriteria:
        return self._defaults

    @property
    def facet_keys(self) -> tuple[str, ...]:
        return self._facet_keys

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def result_set(self) -> AccumulatedResultSet:
        return self._accumulator.state

    @property
    def items(self) -> tuple[Any, ...]:
        return self._accumulator.items

    @property
    def total(self) -> int:
        return self._accumulator.state.total

    @property
    def has_more(self) -> bool:
        return self._accumulator.has_more

    @property
    def is_loading(self) -> bool:
        return self._status is ListingStatus.LOADING

    @property
    def is_loading_more(self) -> bool:
        return self._status is ListingStatus.LOADING_MORE

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def error_phase(self) -> FlightKind | None:
        """Which operation produced the current error."""
        return self._error_phase

    @property
    def query_string(self) -> str:
        return self._query_string

    def view(self) -> ListingView:
        """Snapshot of the observable state."""
        state = self._accumulator.state
        return ListingView(
            items=state.items,
            total=state.total,
            has_more=state.has_more,
            status=self._status,
            is_loading=self.is_loading,
            is_loading_more=self.is_loading_more,
            error=self._error,
            error_phase=self._error_phase,
            query_string=self._query_string,
        )

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    async def initialize(self, url_query: str = "") -> AccumulatedResultSet:
        """Seed the criteria from the page URL and load the first page.

        The URL is left untouched: at load time it is already authoritative.

        Args:
            url_query: Query string of the current URL.

        Returns:
            The result set after the first page settled.
        """
        self._query_string = url_query.lstrip("?")
        try:
            criteria = decode(url_query, self._defaults, self._facet_keys)
        except ValidationError as exc:
            logger.warning("Rejected URL query %r: %s", url_query, exc)
            return self.reject(exc)

        return await self.set_filters(criteria, update_url=False)

    async def set_filters(
        self, criteria: FilterCriteria, *, update_url: bool = True
    ) -> AccumulatedResultSet:
        """Apply new criteria and load their first page.

        Re-submitting unchanged criteria re-fetches from offset 0. Changed
        criteria reset the accumulated items first. Invalid criteria never
        reach the catalog: the controller moves to error instead.

        Args:
            criteria: New filter criteria (base filters are re-applied).
            update_url: Whether to mirror the criteria into the URL.

        Returns:
            The result set after the fetch settled (or was superseded).
        """
        try:
            validate_criteria(criteria)
        except ValidationError as exc:
            logger.warning("Rejected filter criteria: %s", exc)
            return self.reject(exc)

        criteria = self._with_base_filters(criteria)
        query_fingerprint = fingerprint(criteria)
        if query_fingerprint != self._accumulator.fingerprint:
            self._accumulator.clear()

        self._criteria = criteria
        if update_url:
            self._push_url(encode(criteria, self._defaults))

        self._enter(ListingStatus.LOADING)
        token = self._guard.begin_initial(query_fingerprint)
        page = await self._fetch(token, criteria, offset=0)
        if page is None:
            return self._accumulator.state

        accepted = self._guard.accept(token, page)
        if accepted is not None:
            self._accumulator.replace(accepted, query_fingerprint)
            self._status = ListingStatus.READY
        return self._accumulator.state

    async def load_more(self) -> AccumulatedResultSet:
        """Fetch the next page and append it.

        A no-op unless the listing is ready (or failing on a previous
        load-more) and reports more results. A load-more already in flight
        makes further calls no-ops. A failure keeps every loaded item.

        Returns:
            The result set after the fetch settled.
        """
        state = self._accumulator.state
        if state.fingerprint is None or not self._can_load_more():
            return state

        token = self._guard.begin_load_more(state.fingerprint, len(state.items), state.has_more)
        if token is None:
            return state

        self._enter(ListingStatus.LOADING_MORE)
        page = await self._fetch(token, self._criteria, offset=token.offset)
        if page is None:
            return self._accumulator.state

        accepted = self._guard.accept(token, page, current_fingerprint=self._accumulator.fingerprint)
        if accepted is not None:
            self._accumulator.append(accepted)
            self._status = ListingStatus.READY
        return self._accumulator.state

    async def clear(self) -> AccumulatedResultSet:
        """Reset to the surface defaults and reload."""
        self._accumulator.clear()
        return await self.set_filters(self._defaults)

    def reject(self, exc: ValidationError) -> AccumulatedResultSet:
        """Surface invalid criteria as an error without fetching.

        Pending fetches are made stale so they cannot overwrite the error.
        Loaded items stay as they are.
        """
        self._guard.invalidate()
        self._fail(exc, FlightKind.INITIAL)
        return self._accumulator.state

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _can_load_more(self) -> bool:
        if self._accumulator.fingerprint is None or not self._accumulator.has_more:
            return False
        if self._status is ListingStatus.READY:
            return True
        # Retry after a failed load-more; items of the query are still there
        return (
            self._status is ListingStatus.ERROR
            and self._error_phase is FlightKind.LOAD_MORE
        )

    async def _fetch(self, token: FlightToken, criteria: FilterCriteria, offset: int) -> Any:
        filters = criteria.to_request_filters()
        logger.debug(
            "Fetching %s page #%d (offset=%d, limit=%d)",
            token.kind.value,
            token.serial,
            offset,
            self._page_size,
        )
        try:
            return await self._catalog.fetch_page(filters, offset=offset, limit=self._page_size)
        except FetchError as exc:
            if self._guard.release(token):
                logger.warning("%s fetch failed: %s", token.kind.value, exc)
                self._fail(exc, token.kind)
            else:
                logger.debug("Ignoring failure of stale %s fetch #%d", token.kind.value, token.serial)
            return None
        except (Exception, asyncio.CancelledError):
            if self._guard.release(token):
                self._settle()
            raise

    def _with_base_filters(self, criteria: FilterCriteria) -> FilterCriteria:
        if criteria.base_filters == self._base_filters:
            return criteria
        return criteria.model_copy(update={"base_filters": dict(self._base_filters)})

    def _push_url(self, query_string: str) -> None:
        self._query_string = query_string
        if self._on_url_change is not None:
            self._on_url_change(query_string)

    def _enter(self, status: ListingStatus) -> None:
        self._status = status
        self._error = None
        self._error_phase = None

    def _fail(self, exc: Exception, phase: FlightKind) -> None:
        self._status = ListingStatus.ERROR
        self._error = exc
        self._error_phase = phase

    def _settle(self) -> None:
        # An aborted fetch leaves whatever was loaded before it
        if self._accumulator.fingerprint is not None:
            self._status = ListingStatus.READY
        else:
            self._status = ListingStatus.IDLE
