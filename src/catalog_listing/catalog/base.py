"""Base catalog client abstract class."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from catalog_listing.models.pydantic_models import ResultPage


class CatalogClient(ABC):
    """Abstract source of paginated listing results.

    The listing core only depends on ``fetch_page``. Transport, timeouts and
    retries belong to the implementation.

    Subclasses must implement:
    - fetch_page(): Return one page of results for a filter mapping
    """

    @abstractmethod
    async def fetch_page(
        self,
        filters: Mapping[str, Any],
        offset: int,
        limit: int,
    ) -> ResultPage[Any]:
        """Fetch one page of results.

        Args:
            filters: Flat filter mapping (criteria with base filters merged).
            offset: Number of results to skip.
            limit: Maximum results to return.

        Returns:
            ResultPage with items, total and has_more.

        Raises:
            FetchError: If the page could not be retrieved.
        """
        ...

    async def aclose(self) -> None:
        """Release any held resources. No-op by default."""
        return None
