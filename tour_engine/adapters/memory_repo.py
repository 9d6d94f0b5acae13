"""
In-memory tour session repository.

Same conditional-write semantics as the SQLite repository, guarded by a
lock. Used by the component and API tests.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

from tour_engine.core.entities import TourSession
from tour_engine.core.ports.tour_repo import SessionExistsError, SessionNotFoundError


class InMemoryTourSessionRepo:
    """Dict-backed implementation of TourSessionRepoPort."""

    def __init__(self, sessions: list[TourSession] | None = None) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, TourSession] = {s.session_id: s for s in sessions or []}

    def create(self, session: TourSession) -> TourSession:
        with self._lock:
            if session.session_id in self._sessions:
                raise SessionExistsError(session.session_id)
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> TourSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def exists(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def save_finalized(self, session: TourSession) -> TourSession:
        with self._lock:
            stored = self._sessions.get(session.session_id)
            if stored is None:
                raise SessionNotFoundError(session.session_id)
            if stored.is_finalized:
                return stored
            # Attribution bookkeeping is owned by mark_event_sent
            updated = session.model_copy(
                update={"event_sent": stored.event_sent, "event_id": stored.event_id}
            )
            self._sessions[session.session_id] = updated
            return updated

    def mark_event_sent(self, session_id: str, event_id: str) -> bool:
        with self._lock:
            stored = self._sessions.get(session_id)
            if stored is None or stored.event_sent:
                return False
            self._sessions[session_id] = stored.model_copy(
                update={"event_sent": True, "event_id": event_id}
            )
            return True

    def list_sessions(
        self,
        property_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[TourSession]:
        with self._lock:
            sessions = list(self._sessions.values())
        matched = [s for s in sessions if _matches(s, property_id, start, end)]
        matched.sort(key=lambda s: s.started_at, reverse=True)
        return matched[:limit] if limit is not None else matched

    def list_pending_dispatch(self, limit: int = 100) -> list[TourSession]:
        with self._lock:
            pending = [s for s in self._sessions.values() if s.is_finalized and not s.event_sent]
        pending.sort(key=lambda s: s.ended_at)  # type: ignore[arg-type, return-value]
        return pending[:limit]

    def get_totals(
        self,
        property_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        sessions = self.list_sessions(property_id, start, end)
        return {
            "total_sessions": len(sessions),
            "completed_sessions": sum(1 for s in sessions if s.completed),
            "events_sent": sum(1 for s in sessions if s.event_sent),
            "engagement_sum": sum(s.engagement_score for s in sessions),
        }


def _matches(
    session: TourSession,
    property_id: str | None,
    start: datetime | None,
    end: datetime | None,
) -> bool:
    if property_id and session.property_id != property_id:
        return False
    if start is not None and session.started_at < start:
        return False
    if end is not None and session.started_at > end:
        return False
    return True
