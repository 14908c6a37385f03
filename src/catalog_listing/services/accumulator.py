"""Accumulation of "load more" pages into one growing result set."""

from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from typing import Any

from catalog_listing.errors import AccumulatorStateError
from catalog_listing.models.pydantic_models import ResultPage

ItemKey = Callable[[Any], Hashable | None]


@dataclass(frozen=True)
class AccumulatedResultSet:
    """Snapshot of everything loaded so far for one logical query."""

    items: tuple[Any, ...] = ()
    total: int = 0
    has_more: bool = False
    fingerprint: str | None = None

    def __len__(self) -> int:
        return len(self.items)


EMPTY_RESULT_SET = AccumulatedResultSet()


def item_identity(item: Any) -> Hashable | None:
    """Return an item's "id" attribute or key, or None if it has none."""
    if isinstance(item, dict):
        return item.get("id")
    return getattr(item, "id", None)


class ResultAccumulator:
    """Holds the ordered item list, total and has_more for one query.

    Items keep page arrival order (and order within each page). ``total``
    and ``has_more`` always come from the most recently stored page, even
    if the upstream count changed between pages.

    When ``item_key`` is given, an appended item whose key was already
    loaded is skipped, so an upstream insert that shifts offsets does not
    show the same item twice. Items without a key are always kept.

    Skipped items do not count toward the next load-more offset, which is
    always the number of items kept. After an upstream shift of k rows each
    later page therefore re-requests the k rows it overlaps. Pass no
    ``item_key`` where upstream offsets are stable and duplicates cannot occur.
    """

    def __init__(self, item_key: ItemKey | None = None) -> None:
        """Initialize an empty accumulator.

        Args:
            item_key: Optional function returning an item's identity.
        """
        self._item_key = item_key
        self._state = EMPTY_RESULT_SET

    @property
    def state(self) -> AccumulatedResultSet:
        """Current snapshot."""
        return self._state

    @property
    def fingerprint(self) -> str | None:
        return self._state.fingerprint

    @property
    def items(self) -> tuple[Any, ...]:
        return self._state.items

    @property
    def has_more(self) -> bool:
        return self._state.has_more

    def replace(self, page: ResultPage[Any], fingerprint: str) -> AccumulatedResultSet:
        """Discard prior state and start over from the first page of a query.

        Args:
            page: First page of results.
            fingerprint: Fingerprint of the query the page answers.

        Returns:
            The new snapshot.
        """
        self._state = AccumulatedResultSet(
            items=self._unique(page.items, ()),
            total=page.total,
            has_more=page.has_more,
            fingerprint=fingerprint,
        )
        return self._state

    def append(self, page: ResultPage[Any]) -> AccumulatedResultSet:
        """Concatenate a follow-up page onto the current query's items.

        The caller guarantees the page belongs to the current fingerprint.

        Args:
            page: Next page of results.

        Returns:
            The new snapshot.

        Raises:
            AccumulatorStateError: If no first page has been stored yet.
        """
        if self._state.fingerprint is None:
            raise AccumulatorStateError(
                "append() called before replace(); store the first page of a query first"
            )
        self._state = AccumulatedResultSet(
            items=self._state.items + self._unique(page.items, self._state.items),
            total=page.total,
            has_more=page.has_more,
            fingerprint=self._state.fingerprint,
        )
        return self._state

    def clear(self) -> AccumulatedResultSet:
        """Reset to the empty state (no items, no fingerprint)."""
        self._state = EMPTY_RESULT_SET
        return self._state

    def _unique(self, new_items: Iterable[Any], existing: tuple[Any, ...]) -> tuple[Any, ...]:
        if self._item_key is None:
            return tuple(new_items)

        seen = {key for key in map(self._item_key, existing) if key is not None}
        kept = []
        for item in new_items:
            key = self._item_key(item)
            if key is not None:
                if key in seen:
                    continue
                seen.add(key)
            kept.append(item)
        return tuple(kept)
