"""Stale-response rejection for listing fetches.

There is no real cancellation of in-flight requests. Each request gets a
token; starting a newer request replaces the token held in its slot, and a
response is only applied if its token is still the live one when it
arrives. Everything runs on one event loop, so a plain compare-and-swap per
slot is enough.
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT")


class FlightKind(str, Enum):
    """Flight slot a request occupies."""

    INITIAL = "initial"
    LOAD_MORE = "load_more"


@dataclass(frozen=True)
class FlightToken:
    """Identity of one issued request."""

    kind: FlightKind
    serial: int
    fingerprint: str
    offset: int = 0


class FetchGuard:
    """Tracks at most one initial and one load-more request per listing."""

    def __init__(self) -> None:
        self._serials = itertools.count(1)
        self._initial: FlightToken | None = None
        self._load_more: FlightToken | None = None

    @property
    def initial_in_flight(self) -> bool:
        return self._initial is not None

    @property
    def load_more_in_flight(self) -> bool:
        return self._load_more is not None

    def begin_initial(self, fingerprint: str) -> FlightToken:
        """Register a first-page request.

        Supersedes any pending initial request and drops any pending
        load-more, since a filter change makes both obsolete.

        Args:
            fingerprint: Fingerprint of the requested query.

        Returns:
            Token identifying the new request.
        """
        if self._initial is not None:
            logger.debug("Superseding initial fetch #%d", self._initial.serial)
        if self._load_more is not None:
            logger.debug("Dropping load-more fetch #%d for new query", self._load_more.serial)

        token = FlightToken(FlightKind.INITIAL, next(self._serials), fingerprint)
        self._initial = token
        self._load_more = None
        return token

    def begin_load_more(
        self, fingerprint: str, offset: int, has_more: bool
    ) -> FlightToken | None:
        """Register a follow-up page request.

        Args:
            fingerprint: Fingerprint of the query being extended.
            offset: Offset the request will use.
            has_more: Whether the current result set reports more pages.

        Returns:
            Token for the request, or None if a load-more is already in
            flight or there is nothing more to load.
        """
        if self._load_more is not None or not has_more:
            return None

        token = FlightToken(FlightKind.LOAD_MORE, next(self._serials), fingerprint, offset)
        self._load_more = token
        return token

    def is_live(self, token: FlightToken) -> bool:
        """Check whether a token still owns its slot."""
        return self._slot(token.kind) == token

    def accept(
        self,
        token: FlightToken,
        response: ResponseT,
        current_fingerprint: str | None = None,
    ) -> ResponseT | None:
        """Hand a response back for application if it is not stale.

        Args:
            token: Token of the request that produced the response.
            response: The response.
            current_fingerprint: Fingerprint of the accumulated result set;
                required to match for load-more responses.

        Returns:
            The response if it should be applied, otherwise None. Accepting
            frees the slot.
        """
        if not self.is_live(token):
            logger.debug("Discarding stale %s response #%d", token.kind.value, token.serial)
            return None

        if token.kind is FlightKind.LOAD_MORE and token.fingerprint != current_fingerprint:
            logger.debug("Discarding load-more response #%d for an old query", token.serial)
            self._set_slot(token.kind, None)
            return None

        self._set_slot(token.kind, None)
        return response

    def release(self, token: FlightToken) -> bool:
        """Free the slot of a failed request.

        Returns:
            True if the token was live (the failure belongs to the current
            query), False if it was already superseded.
        """
        if not self.is_live(token):
            return False
        self._set_slot(token.kind, None)
        return True

    def invalidate(self) -> None:
        """Make every pending request stale."""
        self._initial = None
        self._load_more = None

    def _slot(self, kind: FlightKind) -> FlightToken | None:
        return self._initial if kind is FlightKind.INITIAL else self._load_more

    def _set_slot(self, kind: FlightKind, token: FlightToken | None) -> None:
        if kind is FlightKind.INITIAL:
            self._initial = token
        else:
            self._load_more = token
