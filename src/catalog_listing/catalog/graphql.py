"""GraphQL catalog client over HTTP."""

import logging
from collections.abc import Callable, Coroutine, Mapping
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from catalog_listing.catalog.base import CatalogClient
from catalog_listing.config import CatalogSettings, GraphQLQueryConfig
from catalog_listing.errors import FetchError
from catalog_listing.models.pydantic_models import ResultPage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GraphQLCatalog(CatalogClient):
    """Fetches listing pages from a GraphQL endpoint.

    The surface's query receives a single ``$filters`` variable holding the
    filter mapping plus ``limit`` and ``offset``. The response page is read
    from ``data.<root_field>`` with the items under ``items_field`` and the
    ``total``/``hasMore`` fields beside them.

    Transport errors (connection failures, timeouts) are retried; HTTP
    error statuses and GraphQL errors fail immediately. Every failure
    surfaces as FetchError.
    """

    def __init__(
        self,
        settings: CatalogSettings,
        query: GraphQLQueryConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Endpoint, timeout and retry settings.
            query: Query document and response shape of the surface.
            client: Optional preconfigured httpx client. A client created
                here is closed by aclose().
        """
        self._settings = settings
        self._query = query
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=settings.timeout,
            headers={"Accept": "application/json", **settings.headers},
        )

    async def __aenter__(self) -> "GraphQLCatalog":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_page(
        self,
        filters: Mapping[str, Any],
        offset: int,
        limit: int,
    ) -> ResultPage[Any]:
        body = {
            "query": self._query.query,
            "variables": {"filters": {**self._select(filters), "limit": limit, "offset": offset}},
        }

        try:
            payload = await self.with_retry(lambda: self._post(body))
        except httpx.HTTPError as exc:
            raise FetchError(f"Catalog request failed: {exc}") from exc

        return self._parse(payload)

    async def with_retry(
        self,
        operation: Callable[[], Coroutine[Any, Any, T]],
    ) -> T:
        """Execute an async operation, retrying transport errors.

        Args:
            operation: Async function to execute.

        Returns:
            Result of the operation.

        Raises:
            httpx.TransportError: If all attempts fail.
            FetchError: Raised by the operation; not retried.
        """
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self._settings.max_retries),
            wait=wait_fixed(self._settings.retry_delay),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await operation()

        raise RuntimeError("Retry logic failed unexpectedly")

    def _select(self, filters: Mapping[str, Any]) -> dict[str, Any]:
        allowed = self._query.allowed_filters
        if allowed is None:
            return dict(filters)
        return {key: value for key, value in filters.items() if key in allowed}

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(self._settings.endpoint, json=body)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"Catalog returned HTTP {response.status_code} for {self._query.root_field}"
            ) from exc

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise FetchError("Catalog response did not contain valid JSON") from exc

        if not isinstance(payload, dict):
            raise FetchError("Catalog response was not a JSON object")
        return payload

    def _parse(self, payload: dict[str, Any]) -> ResultPage[Any]:
        errors = payload.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            messages = [
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
                if error
            ]
            raise FetchError("; ".join(messages) or "Catalog returned errors")

        data = payload.get("data")
        page = data.get(self._query.root_field) if isinstance(data, dict) else None
        if not isinstance(page, dict):
            raise FetchError(f"Catalog response is missing '{self._query.root_field}'")

        items = page.get(self._query.items_field) or []
        if not isinstance(items, list):
            raise FetchError(f"Catalog field '{self._query.items_field}' is not a list")
        try:
            return ResultPage[Any](
                items=list(items),
                total=page.get("total", len(items)),
                has_more=bool(page.get("hasMore", False)),
            )
        except ValidationError as exc:
            raise FetchError(f"Malformed '{self._query.root_field}' page: {exc}") from exc
