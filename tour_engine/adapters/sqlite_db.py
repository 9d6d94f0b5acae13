"""
SQLite Database Adapter.

Implements TourSessionRepoPort on a single tour_sessions table.
Rooms and actions are stored as JSON text; timestamps as UTC ISO strings.

Conditional writes:
- finalize only touches rows with ended_at IS NULL
- mark_event_sent only touches rows with event_sent = 0
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from typing import Any

from tour_engine.core.entities import RoomVisit, TourAction, TourSession, TrackingParams
from tour_engine.core.ports.tour_repo import SessionExistsError, SessionNotFoundError

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


def format_dt(dt: datetime | None) -> str | None:
    """Normalize to a UTC ISO string so stored values sort correctly."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


# -----------------------------------------------------------------------------
# Tour Session Repository
# -----------------------------------------------------------------------------


class SQLiteTourSessionRepo(SQLiteRepoBase):
    """SQLite implementation of TourSessionRepoPort."""

    def create(self, session: TourSession) -> TourSession:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tour_sessions (
                    session_id, property_id, user_id, contact_provided, tour_type, started_at,
                    ended_at, total_duration_seconds, rooms_visited, actions_taken,
                    completed, completion_reason, engagement_score, lead_quality_score,
                    event_sent, event_id, facebook_click_id, facebook_browser_id,
                    utm_source, utm_medium, utm_campaign
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.session_id,
                    session.property_id,
                    session.user_id,
                    int(session.contact_provided),
                    session.tour_type,
                    format_dt(session.started_at),
                    format_dt(session.ended_at),
                    session.total_duration_seconds,
                    _dump_rooms(session.rooms_visited),
                    _dump_actions(session.actions_taken),
                    int(session.completed),
                    session.completion_reason,
                    session.engagement_score,
                    session.lead_quality_score,
                    int(session.event_sent),
                    session.event_id,
                    session.tracking.fbclid,
                    session.tracking.fbp,
                    session.tracking.utm_source,
                    session.tracking.utm_medium,
                    session.tracking.utm_campaign,
                ),
            )
            if self._should_close():
                conn.commit()
        except sqlite3.IntegrityError as e:
            if "tour_sessions.session_id" in str(e) or "UNIQUE" in str(e):
                raise SessionExistsError(session.session_id) from e
            raise
        finally:
            if self._should_close():
                conn.close()
        return session

    def get(self, session_id: str) -> TourSession | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM tour_sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def exists(self, session_id: str) -> bool:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT 1 AS found FROM tour_sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
            return row is not None
        finally:
            if self._should_close():
                conn.close()

    def save_finalized(self, session: TourSession) -> TourSession:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE tour_sessions
                SET ended_at = ?,
                    total_duration_seconds = ?,
                    rooms_visited = ?,
                    actions_taken = ?,
                    completed = ?,
                    completion_reason = ?,
                    engagement_score = ?,
                    lead_quality_score = ?,
                    facebook_click_id = ?,
                    facebook_browser_id = ?,
                    utm_source = ?,
                    utm_medium = ?,
                    utm_campaign = ?
                WHERE session_id = ? AND ended_at IS NULL
                """,
                (
                    format_dt(session.ended_at),
                    session.total_duration_seconds,
                    _dump_rooms(session.rooms_visited),
                    _dump_actions(session.actions_taken),
                    int(session.completed),
                    session.completion_reason,
                    session.engagement_score,
                    session.lead_quality_score,
                    session.tracking.fbclid,
                    session.tracking.fbp,
                    session.tracking.utm_source,
                    session.tracking.utm_medium,
                    session.tracking.utm_campaign,
                    session.session_id,
                ),
            )
            if self._should_close():
                conn.commit()
            updated = cursor.rowcount == 1
        finally:
            if self._should_close():
                conn.close()

        stored = self.get(session.session_id)
        if stored is None:
            raise SessionNotFoundError(session.session_id)
        # Already finalized elsewhere: the stored record stands
        return session if updated else stored

    def mark_event_sent(self, session_id: str, event_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE tour_sessions
                SET event_sent = 1, event_id = ?
                WHERE session_id = ? AND event_sent = 0
                """,
                (event_id, session_id),
            )
            if self._should_close():
                conn.commit()
            return cursor.rowcount == 1
        finally:
            if self._should_close():
                conn.close()

    def list_sessions(
        self,
        property_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[TourSession]:
        where, params = _filters(property_id, start, end)
        query = f"SELECT * FROM tour_sessions{where} ORDER BY started_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        conn = self._get_conn()
        try:
            rows = conn.execute(query, params).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def list_pending_dispatch(self, limit: int = 100) -> list[TourSession]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM tour_sessions
                WHERE event_sent = 0 AND ended_at IS NOT NULL
                ORDER BY ended_at ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def get_totals(
        self,
        property_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        where, params = _filters(property_id, start, end)
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total_sessions,
                    COALESCE(SUM(completed), 0) AS completed_sessions,
                    COALESCE(SUM(event_sent), 0) AS events_sent,
                    COALESCE(SUM(engagement_score), 0) AS engagement_sum
                FROM tour_sessions{where}
                """,
                params,
            ).fetchone()
            return {
                "total_sessions": int(row["total_sessions"]),
                "completed_sessions": int(row["completed_sessions"]),
                "events_sent": int(row["events_sent"]),
                "engagement_sum": int(row["engagement_sum"]),
            }
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> TourSession:
        return TourSession(
            session_id=row["session_id"],
            property_id=row["property_id"],
            user_id=row["user_id"],
            contact_provided=bool(row["contact_provided"]),
            tour_type=row["tour_type"],
            started_at=datetime.fromisoformat(row["started_at"]),
            ended_at=parse_dt(row["ended_at"]),
            total_duration_seconds=row["total_duration_seconds"],
            rooms_visited=[RoomVisit.model_validate(v) for v in json.loads(row["rooms_visited"] or "[]")],
            actions_taken=[TourAction.model_validate(a) for a in json.loads(row["actions_taken"] or "[]")],
            completed=bool(row["completed"]),
            completion_reason=row["completion_reason"],
            engagement_score=row["engagement_score"],
            lead_quality_score=row["lead_quality_score"],
            event_sent=bool(row["event_sent"]),
            event_id=row["event_id"],
            tracking=TrackingParams(
                fbclid=row["facebook_click_id"],
                fbp=row["facebook_browser_id"],
                utm_source=row["utm_source"],
                utm_medium=row["utm_medium"],
                utm_campaign=row["utm_campaign"],
            ),
        )


def _dump_rooms(visits: list[RoomVisit]) -> str:
    return json.dumps([v.model_dump(mode="json", exclude={"time_spent"}) for v in visits])


def _dump_actions(actions: list[TourAction]) -> str:
    return json.dumps([a.model_dump(mode="json") for a in actions])


def _filters(
    property_id: str | None,
    start: datetime | None,
    end: datetime | None,
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if property_id:
        clauses.append("property_id = ?")
        params.append(property_id)
    if start is not None:
        clauses.append("started_at >= ?")
        params.append(format_dt(start))
    if end is not None:
        clauses.append("started_at <= ?")
        params.append(format_dt(end))
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params
