"""Unit tests for ListingController."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock

import pytest

from catalog_listing.catalog.base import CatalogClient
from catalog_listing.catalog.in_memory import InMemoryCatalog
from catalog_listing.config import SurfaceConfig
from catalog_listing.errors import FetchError, ValidationError
from catalog_listing.models.pydantic_models import (
    CatalogItem,
    FilterCriteria,
    ListingStatus,
    ResultPage,
    SortBy,
)
from catalog_listing.services.fetch_guard import FlightKind
from catalog_listing.services.listing_controller import ListingController


class ScriptedCatalog(CatalogClient):
    """Catalog whose responses are resolved by the test, in any order."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def fetch_page(self, filters, offset, limit):
        future = asyncio.get_running_loop().create_future()
        self.calls.append({"filters": dict(filters), "offset": offset, "limit": limit, "future": future})
        return await future

    def resolve(self, index: int, page: ResultPage) -> None:
        self.calls[index]["future"].set_result(page)

    def fail(self, index: int, exc: Exception) -> None:
        self.calls[index]["future"].set_exception(exc)


class RecordingCatalog(InMemoryCatalog):
    """In-memory catalog that records requested offsets."""

    def __init__(self, items, facet_keys=()) -> None:
        super().__init__(items, facet_keys)
        self.offsets: list[int] = []

    async def fetch_page(self, filters, offset, limit):
        self.offsets.append(offset)
        return await super().fetch_page(filters, offset, limit)


def page(ids: list[int], total: int, has_more: bool) -> ResultPage:
    """Build a page of dict items."""
    return ResultPage(items=[{"id": i} for i in ids], total=total, has_more=has_more)


def ids(controller: ListingController) -> list[Any]:
    return [item["id"] if isinstance(item, dict) else item.id for item in controller.items]


async def settle() -> None:
    """Let pending tasks run up to their next await."""
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture
def catalog() -> ScriptedCatalog:
    return ScriptedCatalog()


@pytest.fixture
def url_changes() -> MagicMock:
    return MagicMock()


@pytest.fixture
def controller(catalog, url_changes) -> ListingController:
    """Controller over a scripted catalog with a page size of 3."""
    return ListingController(
        catalog,
        facet_keys=("species",),
        page_size=3,
        on_url_change=url_changes,
    )


async def load_first_page(controller, catalog, criteria, result) -> None:
    """Apply criteria and resolve the resulting first-page request."""
    task = asyncio.create_task(controller.set_filters(criteria))
    await settle()
    catalog.resolve(len(catalog.calls) - 1, result)
    await task


@pytest.fixture
def characters() -> list[CatalogItem]:
    """50 dragons and 5 wolves with distinct creation times."""
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)
    items = []
    for i in range(50):
        items.append(
            CatalogItem(
                id=f"dragon-{i}",
                name=f"Dragon {i}",
                created_at=start + timedelta(minutes=i),
                attributes={"species": "Dragon"},
            )
        )
    for i in range(5):
        items.append(
            CatalogItem(
                id=f"wolf-{i}",
                name=f"Wolf {i}",
                created_at=start + timedelta(hours=2, minutes=i),
                attributes={"species": "Wolf"},
            )
        )
    return items


class TestConstruction:
    """Tests for controller construction."""

    def test_initial_state(self, controller):
        """A new controller should be idle and empty."""
        view = controller.view()
        assert view.status is ListingStatus.IDLE
        assert view.items == ()
        assert view.total == 0
        assert view.has_more is False
        assert view.error is None
        assert view.query_string == ""

    def test_rejects_non_positive_page_size(self, catalog):
        """Page size must be at least one."""
        with pytest.raises(ValueError, match="page_size"):
            ListingController(catalog, page_size=0)

    def test_for_surface(self, catalog):
        """Surface settings should configure the controller."""
        surface = SurfaceConfig(
            name="characters",
            page_size=12,
            facet_keys=["species"],
            defaults={"sortBy": "name", "sortOrder": "asc"},
            base_filters={"communityId": "c-1"},
        )
        controller = ListingController.for_surface(catalog, surface)
        assert controller.page_size == 12
        assert controller.facet_keys == ("species",)
        assert controller.defaults.sort_by is SortBy.NAME
        assert controller.defaults.base_filters == {"communityId": "c-1"}

    @pytest.mark.asyncio
    async def test_for_surface_without_dedup(self, catalog):
        """A surface can turn off skipping of repeated ids."""
        surface = SurfaceConfig(name="galleries", page_size=3, dedupe_items=False)
        controller = ListingController.for_surface(catalog, surface)
        await load_first_page(controller, catalog, FilterCriteria(), page([1, 2, 3], 9, True))

        task = asyncio.create_task(controller.load_more())
        await settle()
        catalog.resolve(1, page([3, 4, 5], 9, True))
        await task
        assert ids(controller) == [1, 2, 3, 3, 4, 5]


class TestInitialize:
    """Tests for initialize()."""

    @pytest.mark.asyncio
    async def test_empty_url_loads_defaults(self, controller, catalog, url_changes):
        """An empty URL should fetch the first page of the defaults."""
        task = asyncio.create_task(controller.initialize(""))
        await settle()
        assert controller.status is ListingStatus.LOADING
        assert controller.is_loading
        assert catalog.calls[0]["offset"] == 0
        assert catalog.calls[0]["limit"] == 3
        assert catalog.calls[0]["filters"] == {"sortBy": "created", "sortOrder": "desc"}

        catalog.resolve(0, page([1, 2, 3], 10, True))
        await task

        assert controller.status is ListingStatus.READY
        assert ids(controller) == [1, 2, 3]
        assert controller.total == 10
        assert controller.has_more is True
        url_changes.assert_not_called()

    @pytest.mark.asyncio
    async def test_url_seeds_criteria(self, controller, catalog, url_changes):
        """URL parameters should become the criteria without rewriting the URL."""
        task = asyncio.create_task(controller.initialize("?search=Dragon&species=Dragon&isSellable=true"))
        await settle()
        filters = catalog.calls[0]["filters"]
        assert filters["search"] == "Dragon"
        assert filters["species"] == "Dragon"
        assert filters["isSellable"] is True

        catalog.resolve(0, page([1], 1, False))
        await task
        assert controller.criteria.search == "Dragon"
        assert controller.query_string == "search=Dragon&species=Dragon&isSellable=true"
        url_changes.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_url_enters_error_without_fetch(self, controller, catalog):
        """A non-numeric price in the URL should never reach the catalog."""
        await controller.initialize("minPrice=cheap")
        assert controller.status is ListingStatus.ERROR
        assert isinstance(controller.error, ValidationError)
        assert controller.error_phase is FlightKind.INITIAL
        assert catalog.calls == []


class TestSetFilters:
    """Tests for set_filters()."""

    @pytest.mark.asyncio
    async def test_pushes_url(self, controller, catalog, url_changes):
        """Changed criteria should be mirrored into the URL."""
        await load_first_page(
            controller, catalog, FilterCriteria(search="Wolf"), page([1], 1, False)
        )
        url_changes.assert_called_once_with("search=Wolf")
        assert controller.query_string == "search=Wolf"

    @pytest.mark.asyncio
    async def test_new_query_clears_items_immediately(self, controller, catalog):
        """Items of the previous query should not be shown under new filters."""
        await load_first_page(controller, catalog, FilterCriteria(search="a"), page([1, 2, 3], 6, True))

        task = asyncio.create_task(controller.set_filters(FilterCriteria(search="b")))
        await settle()
        assert controller.items == ()
        assert controller.status is ListingStatus.LOADING

        catalog.resolve(1, page([7], 1, False))
        await task
        assert ids(controller) == [7]

    @pytest.mark.asyncio
    async def test_same_query_refetches_from_first_page(self, controller, catalog):
        """Resubmitting unchanged criteria should replace, not append."""
        criteria = FilterCriteria(search="a")
        await load_first_page(controller, catalog, criteria, page([1, 2, 3], 6, True))

        task = asyncio.create_task(controller.set_filters(criteria))
        await settle()
        assert catalog.calls[1]["offset"] == 0
        assert ids(controller) == [1, 2, 3]

        catalog.resolve(1, page([1, 2, 4], 6, True))
        await task
        assert ids(controller) == [1, 2, 4]

    @pytest.mark.asyncio
    async def test_stale_initial_response_is_discarded(self, controller, catalog):
        """A slow response for an older query must not overwrite a newer one."""
        first = asyncio.create_task(controller.set_filters(FilterCriteria(search="old")))
        await settle()
        second = asyncio.create_task(controller.set_filters(FilterCriteria(search="new")))
        await settle()

        catalog.resolve(1, page([2], 1, False))
        await second
        catalog.resolve(0, page([1], 1, False))
        await first

        assert ids(controller) == [2]
        assert controller.criteria.search == "new"
        assert controller.status is ListingStatus.READY

    @pytest.mark.asyncio
    async def test_stale_failure_is_ignored(self, controller, catalog):
        """A failure of a superseded request should not surface."""
        first = asyncio.create_task(controller.set_filters(FilterCriteria(search="old")))
        await settle()
        second = asyncio.create_task(controller.set_filters(FilterCriteria(search="new")))
        await settle()

        catalog.fail(0, FetchError("timeout"))
        await first
        assert controller.status is ListingStatus.LOADING
        assert controller.error is None

        catalog.resolve(1, page([2], 1, False))
        await second
        assert controller.status is ListingStatus.READY

    @pytest.mark.asyncio
    async def test_initial_failure_enters_error(self, controller, catalog):
        """A failing first page should surface the error."""
        task = asyncio.create_task(controller.set_filters(FilterCriteria(search="a")))
        await settle()
        catalog.fail(0, FetchError("boom"))
        await task

        assert controller.status is ListingStatus.ERROR
        assert str(controller.error) == "boom"
        assert controller.error_phase is FlightKind.INITIAL

    @pytest.mark.asyncio
    async def test_new_query_recovers_from_error(self, controller, catalog):
        """Applying criteria again should leave the error state."""
        task = asyncio.create_task(controller.set_filters(FilterCriteria(search="a")))
        await settle()
        catalog.fail(0, FetchError("boom"))
        await task

        await load_first_page(controller, catalog, FilterCriteria(search="a"), page([1], 1, False))
        assert controller.status is ListingStatus.READY
        assert controller.error is None

    @pytest.mark.asyncio
    async def test_invalid_range_enters_error_without_fetch(self, controller, catalog):
        """minPrice above maxPrice should be rejected before fetching."""
        criteria = FilterCriteria(min_price=Decimal("10"), max_price=Decimal("1"))
        await controller.set_filters(criteria)
        assert controller.status is ListingStatus.ERROR
        assert isinstance(controller.error, ValidationError)
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_invalid_criteria_make_pending_fetch_stale(self, controller, catalog):
        """A pending response should not overwrite a validation error."""
        task = asyncio.create_task(controller.set_filters(FilterCriteria(search="a")))
        await settle()
        await controller.set_filters(FilterCriteria(min_price=Decimal("10"), max_price=Decimal("1")))

        catalog.resolve(0, page([1], 1, False))
        await task
        assert controller.status is ListingStatus.ERROR
        assert controller.items == ()

    @pytest.mark.asyncio
    async def test_base_filters_scope_request_not_url(self, catalog, url_changes):
        """Scoping filters should be sent upstream, win over user input and stay out of the URL."""
        controller = ListingController(
            catalog,
            base_filters={"communityId": "c-1"},
            facet_keys=("communityId",),
            on_url_change=url_changes,
        )
        criteria = FilterCriteria(search="x", category_fields={"communityId": "other"})
        await load_first_page(controller, catalog, criteria, page([], 0, False))

        assert catalog.calls[0]["filters"]["communityId"] == "c-1"
        assert controller.criteria.base_filters == {"communityId": "c-1"}
        assert "c-1" not in controller.query_string

    @pytest.mark.asyncio
    async def test_cancellation_settles_status(self, controller, catalog):
        """A cancelled first fetch should not leave the controller loading."""
        task = asyncio.create_task(controller.set_filters(FilterCriteria(search="a")))
        await settle()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert controller.status is ListingStatus.IDLE


class TestLoadMore:
    """Tests for load_more()."""

    @pytest.mark.asyncio
    async def test_appends_next_page(self, controller, catalog):
        """The next page should be requested at the current item count."""
        await load_first_page(controller, catalog, FilterCriteria(), page([1, 2, 3], 5, True))

        task = asyncio.create_task(controller.load_more())
        await settle()
        assert controller.status is ListingStatus.LOADING_MORE
        assert controller.is_loading_more
        assert catalog.calls[1]["offset"] == 3

        catalog.resolve(1, page([4, 5], 5, False))
        await task
        assert ids(controller) == [1, 2, 3, 4, 5]
        assert controller.has_more is False
        assert controller.status is ListingStatus.READY

    @pytest.mark.asyncio
    async def test_overlap_skipped_and_offset_follows_kept_items(self, controller, catalog):
        """Repeated ids are dropped and the next offset counts only kept items."""
        await load_first_page(controller, catalog, FilterCriteria(), page([1, 2, 3], 9, True))

        task = asyncio.create_task(controller.load_more())
        await settle()
        catalog.resolve(1, page([3, 4, 5], 9, True))
        await task
        assert ids(controller) == [1, 2, 3, 4, 5]

        task = asyncio.create_task(controller.load_more())
        await settle()
        assert catalog.calls[2]["offset"] == 5
        catalog.resolve(2, page([5, 6, 7], 9, False))
        await task
        assert ids(controller) == [1, 2, 3, 4, 5, 6, 7]

    @pytest.mark.asyncio
    async def test_noop_when_idle(self, controller, catalog):
        """Nothing should be fetched before the first page."""
        await controller.load_more()
        assert catalog.calls == []
        assert controller.status is ListingStatus.IDLE

    @pytest.mark.asyncio
    async def test_noop_when_no_more(self, controller, catalog):
        """Nothing should be fetched once everything is loaded."""
        await load_first_page(controller, catalog, FilterCriteria(), page([1, 2], 2, False))
        result = await controller.load_more()
        assert len(catalog.calls) == 1
        assert len(result) == 2

    @pytest.mark.asyncio
    async def test_noop_while_initial_loading(self, controller, catalog):
        """load_more during a first-page fetch should do nothing."""
        await load_first_page(controller, catalog, FilterCriteria(search="a"), page([1, 2, 3], 9, True))
        task = asyncio.create_task(controller.set_filters(FilterCriteria(search="a")))
        await settle()

        await controller.load_more()
        assert len(catalog.calls) == 2

        catalog.resolve(1, page([1, 2, 3], 9, True))
        await task

    @pytest.mark.asyncio
    async def test_single_flight(self, controller, catalog):
        """Repeated load_more while one is pending should issue one request."""
        await load_first_page(controller, catalog, FilterCriteria(), page([1, 2, 3], 9, True))

        first = asyncio.create_task(controller.load_more())
        second = asyncio.create_task(controller.load_more())
        await settle()
        assert len(catalog.calls) == 2

        catalog.resolve(1, page([4, 5, 6], 9, True))
        await asyncio.gather(first, second)
        assert ids(controller) == [1, 2, 3, 4, 5, 6]

    @pytest.mark.asyncio
    async def test_filter_change_discards_pending_page(self, controller, catalog):
        """A load-more response for the old query must never be appended."""
        await load_first_page(controller, catalog, FilterCriteria(search="a"), page([1, 2, 3], 9, True))

        more = asyncio.create_task(controller.load_more())
        await settle()
        change = asyncio.create_task(controller.set_filters(FilterCriteria(search="b")))
        await settle()

        catalog.resolve(1, page([4, 5, 6], 9, True))
        await more
        assert controller.items == ()

        catalog.resolve(2, page([10], 1, False))
        await change
        assert ids(controller) == [10]
        assert controller.status is ListingStatus.READY

    @pytest.mark.asyncio
    async def test_failure_keeps_loaded_items(self, controller, catalog):
        """A failed load-more should leave the earlier pages in place."""
        await load_first_page(controller, catalog, FilterCriteria(), page([1, 2, 3], 9, True))

        task = asyncio.create_task(controller.load_more())
        await settle()
        catalog.fail(1, FetchError("network down"))
        await task

        assert controller.status is ListingStatus.ERROR
        assert controller.error_phase is FlightKind.LOAD_MORE
        assert ids(controller) == [1, 2, 3]
        assert controller.has_more is True

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, controller, catalog):
        """Calling load_more again after a failure should retry the same offset."""
        await load_first_page(controller, catalog, FilterCriteria(), page([1, 2, 3], 9, True))

        task = asyncio.create_task(controller.load_more())
        await settle()
        catalog.fail(1, FetchError("network down"))
        await task

        retry = asyncio.create_task(controller.load_more())
        await settle()
        assert catalog.calls[2]["offset"] == 3
        catalog.resolve(2, page([4, 5, 6], 9, True))
        await retry

        assert controller.status is ListingStatus.READY
        assert controller.error is None
        assert ids(controller) == [1, 2, 3, 4, 5, 6]

    @pytest.mark.asyncio
    async def test_no_retry_after_initial_failure(self, controller, catalog):
        """load_more should not paper over a failed first page."""
        await load_first_page(controller, catalog, FilterCriteria(search="a"), page([1, 2, 3], 9, True))
        task = asyncio.create_task(controller.set_filters(FilterCriteria(search="a")))
        await settle()
        catalog.fail(1, FetchError("boom"))
        await task

        await controller.load_more()
        assert len(catalog.calls) == 2


class TestClear:
    """Tests for clear()."""

    @pytest.mark.asyncio
    async def test_resets_to_defaults(self, controller, catalog, url_changes):
        """Clearing should reload the defaults and empty the URL."""
        await load_first_page(controller, catalog, FilterCriteria(search="a"), page([1, 2, 3], 9, True))

        task = asyncio.create_task(controller.clear())
        await settle()
        assert controller.items == ()
        catalog.resolve(1, page([5, 6, 7], 20, True))
        await task

        assert controller.criteria == controller.defaults
        assert controller.query_string == ""
        assert url_changes.call_args.args == ("",)
        assert ids(controller) == [5, 6, 7]


class TestBrowsingScenario:
    """End-to-end browsing against the in-memory catalog."""

    @pytest.mark.asyncio
    async def test_search_load_more_then_change_filter(self, characters):
        """Dragon search, load more, then switch to wolves."""
        catalog = RecordingCatalog(characters, facet_keys=("species",))
        controller = ListingController(catalog, facet_keys=("species",), page_size=12)

        await controller.initialize("search=Dragon")
        assert len(controller.items) == 12
        assert controller.total == 50
        assert controller.has_more is True

        await controller.load_more()
        assert catalog.offsets == [0, 12]
        assert len(controller.items) == 24
        assert len({item.id for item in controller.items}) == 24

        await controller.set_filters(controller.criteria.model_copy(update={"search": "Wolf"}))
        assert catalog.offsets == [0, 12, 0]
        assert controller.total == 5
        assert controller.has_more is False
        assert all(item.attributes["species"] == "Wolf" for item in controller.items)
        assert controller.query_string == "search=Wolf"

    @pytest.mark.asyncio
    async def test_load_until_exhausted(self, characters):
        """Loading every page should yield each matching item once."""
        catalog = InMemoryCatalog(characters, facet_keys=("species",))
        controller = ListingController(catalog, facet_keys=("species",), page_size=12)

        await controller.initialize("species=Dragon&sortBy=name&sortOrder=asc")
        while controller.has_more:
            await controller.load_more()

        assert len(controller.items) == 50
        assert controller.total == 50
        names = [item.name for item in controller.items]
        assert names == sorted(names)
