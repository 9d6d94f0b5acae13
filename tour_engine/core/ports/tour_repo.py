"""
Tour session repository port.

Server-side persistence of TourSession records.

Key requirements:
- create never overwrites an existing session id
- finalize happens once; later calls see is_finalized and skip the write
- mark_event_sent is a conditional write: an existing event_id is never replaced
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from tour_engine.core.entities import TourSession


class TourSessionRepoPort(Protocol):
    """Repository interface for tour sessions."""

    def create(self, session: TourSession) -> TourSession:
        """
        Persist a new session.

        Raises:
            SessionExistsError: if the session id is already stored
        """
        ...

    def get(self, session_id: str) -> TourSession | None:
        """Get a session by id."""
        ...

    def exists(self, session_id: str) -> bool:
        """Check whether a session id is durably stored."""
        ...

    def save_finalized(self, session: TourSession) -> TourSession:
        """
        Write the completion fields of a session.

        Raises:
            SessionNotFoundError: if the session id is not stored
        """
        ...

    def mark_event_sent(self, session_id: str, event_id: str) -> bool:
        """
        Set event_sent=True and event_id, only if not already sent.

        Returns:
            True if this call recorded the event, False if one was already recorded
        """
        ...

    def list_sessions(
        self,
        property_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[TourSession]:
        """List sessions newest first, filtered by property and start-time range."""
        ...

    def list_pending_dispatch(self, limit: int = 100) -> list[TourSession]:
        """List finalized sessions whose attribution event has not been sent."""
        ...

    def get_totals(
        self,
        property_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Get aggregate counts.

        Returns dict with:
        - total_sessions
        - completed_sessions
        - events_sent
        - engagement_sum
        """
        ...


# --- Error Types ---


class SessionNotFoundError(Exception):
    """No session is stored under the given id."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Tour session not found: {session_id}")


class SessionExistsError(Exception):
    """A session is already stored under the given id."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Tour session already exists: {session_id}")
