"""
Tour session component - Client-held session state machine.

Owns one tour session from creation to completion:

    idle -> creating -> tracking -> completing -> completed
              |                        |
              +-> idle (create failed) +-> tracking (completion failed)

Invariants:
- At most one create and one completion request in flight (single-flight)
- No completion request for a session that was never durably created
- A failed or timed-out completion leaves the machine in tracking so the
  caller can retry
- At most one RoomVisit is open at any time

Network calls are made outside the lock; the lock only guards state.
"""

from __future__ import annotations

import logging
import re
import secrets
import threading
from datetime import datetime
from types import TracebackType
from typing import Any

from tour_engine.core.entities import (
    ROOM_ENTER,
    ROOM_EXIT,
    SHARE,
    UNKNOWN_ROOM,
    RoomVisit,
    TourAction,
)
from tour_engine.core.ports import (
    CollaboratorError,
    CompleteResult,
    MilestoneRecordResult,
    SessionPersistencePort,
    TimePort,
)

from .models import (
    CompletionResult,
    StartResult,
    TrackerConfig,
    TrackerState,
)

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


# --- Session Identifiers ---


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_session_id(now: datetime, hint: str = "") -> str:
    """
    Build a session id: {base36 epoch millis}-{random}-{sanitised hint}.

    The random part carries ~46 bits from the secrets module.
    """
    millis = int(now.timestamp() * 1000)
    random_part = to_base36(secrets.randbelow(36**9)).rjust(9, "0")
    clean_hint = re.sub(r"[^a-zA-Z0-9]", "", hint)
    return f"{to_base36(millis)}-{random_part}-{clean_hint}"


# --- State Machine ---


class TourSessionTracker:
    """
    Tracks one tour session.

    Usage:
        with TourSessionTracker(config, persistence, clock) as tracker:
            tracker.start_tracking()
            tracker.enter_room("kitchen")
            tracker.track_action("click", "oven")
            tracker.stop_tracking("completed")

    Leaving the block (or calling close()) while still tracking sends a
    best-effort completion tagged component_unmount.
    """

    def __init__(
        self,
        config: TrackerConfig,
        persistence: SessionPersistencePort,
        clock: TimePort,
        session_id: str | None = None,
    ) -> None:
        self._config = config
        self._persistence = persistence
        self._clock = clock
        self._lock = threading.Lock()

        self._session_id = session_id or generate_session_id(clock.now_utc(), config.session_hint)
        self._state = TrackerState.IDLE
        self._creation_in_progress = False
        self._completion_in_progress = False
        self._session_created = False
        self._closed = False

        self._started_at: datetime | None = None
        self._actions: list[TourAction] = []
        self._room_visits: list[RoomVisit] = []
        self._current_room: str | None = None
        self._engagement_score = 0

    # --- Read-only views ---

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def is_tracking(self) -> bool:
        return self._state == TrackerState.TRACKING

    @property
    def session_created(self) -> bool:
        return self._session_created

    @property
    def current_room(self) -> str | None:
        return self._current_room

    @property
    def action_count(self) -> int:
        return len(self._actions)

    @property
    def actions(self) -> tuple[TourAction, ...]:
        with self._lock:
            return tuple(self._actions)

    @property
    def room_visits(self) -> tuple[RoomVisit, ...]:
        with self._lock:
            return tuple(visit.model_copy() for visit in self._room_visits)

    @property
    def engagement_score(self) -> int:
        """Last engagement score reported by the service (0 until completion)."""
        return self._engagement_score

    def duration_seconds(self) -> int:
        if self._started_at is None:
            return 0
        return max(0, int((self._clock.now_utc() - self._started_at).total_seconds()))

    # --- Creation ---

    def start_tracking(self) -> StartResult:
        """
        Create the durable session and begin tracking.

        No-op while a create is in flight or the session is already tracking.
        On failure the machine returns to idle and nothing is eligible for
        completion.
        """
        with self._lock:
            if self._closed:
                return self._skipped_start("closed")
            if self._creation_in_progress or self._state in (
                TrackerState.CREATING,
                TrackerState.TRACKING,
            ):
                logger.debug("Session %s already starting or tracking", self._session_id)
                return self._skipped_start("already_started")
            if self._state in (TrackerState.COMPLETING, TrackerState.COMPLETED):
                return self._skipped_start("already_completed")

            self._creation_in_progress = True
            self._state = TrackerState.CREATING
            started_at = self._clock.now_utc()

        code: str | None = None
        message: str | None = None
        try:
            result = self._persistence.create(
                self._session_id,
                self._config.property_id,
                self._config.tour_kind,
                self._config.user_info,
                self._config.tracking,
            )
            if not result.success:
                code, message = "rejected", result.error
        except CollaboratorError as e:
            code, message = "transient_failure", str(e)
        except Exception as e:
            logger.exception("Unexpected error creating session %s", self._session_id)
            code, message = "unexpected_error", str(e)

        with self._lock:
            self._creation_in_progress = False
            if code is None:
                self._state = TrackerState.TRACKING
                self._session_created = True
                self._started_at = started_at
            else:
                self._state = TrackerState.IDLE

        if code is not None:
            logger.warning(
                "Session %s creation failed (%s): %s", self._session_id, code, message
            )
            return StartResult(success=False, session_id=self._session_id, code=code, message=message)

        logger.info("Session %s created, tracking started", self._session_id)
        return StartResult(success=True, session_id=self._session_id)

    def _skipped_start(self, code: str) -> StartResult:
        return StartResult(success=False, session_id=self._session_id, skipped=True, code=code)

    # --- Action recording ---

    def track_action(
        self,
        action_type: str,
        target: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Append an action tagged with the current room. Ignored unless tracking."""
        with self._lock:
            if self._state != TrackerState.TRACKING:
                return False
            self._append_action(action_type, target, self._current_room, metadata)
            return True

    def track_interaction(self, interaction_type: str, target: str | None = None) -> bool:
        return self.track_action(interaction_type, target)

    def _append_action(
        self,
        action_type: str,
        target: str | None,
        room: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> TourAction:
        action = TourAction(
            type=action_type,
            target=target,
            room=room or UNKNOWN_ROOM,
            timestamp=self._clock.now_utc(),
            metadata=metadata,
        )
        self._actions.append(action)
        open_visit = self._open_visit()
        if open_visit is not None and room == open_visit.room_name:
            open_visit.actions_in_room.append(action)
        return action

    def _open_visit(self) -> RoomVisit | None:
        for visit in reversed(self._room_visits):
            if visit.is_open:
                return visit
        return None

    # --- Rooms ---

    def enter_room(self, room_name: str) -> bool:
        """Open a RoomVisit, closing the current one first."""
        with self._lock:
            if self._state != TrackerState.TRACKING:
                return False
            exited = self._exit_room_locked()
            self._current_room = room_name
            self._room_visits.append(RoomVisit(room_name=room_name, entered_at=self._clock.now_utc()))
            self._append_action(ROOM_ENTER, room_name, room_name)

        if exited is not None:
            self._report_room_focus(*exited)
        return True

    def exit_room(self) -> int | None:
        """
        Close the open RoomVisit.

        Returns:
            Seconds spent in the room, or None if no room was open
        """
        with self._lock:
            if self._state != TrackerState.TRACKING:
                return None
            exited = self._exit_room_locked()

        if exited is None:
            return None
        self._report_room_focus(*exited)
        return exited[1]

    def _exit_room_locked(self) -> tuple[str, int] | None:
        room = self._current_room
        if room is None:
            return None

        now = self._clock.now_utc()
        visit = self._open_visit()
        time_spent = 0
        if visit is not None:
            visit.left_at = now
            time_spent = visit.time_spent

        self._append_action(ROOM_EXIT, room, room, {"time_spent": time_spent})
        self._current_room = None
        return room, time_spent

    def _report_room_focus(self, room_name: str, time_spent: int) -> None:
        if time_spent > self._config.room_focus_threshold_seconds:
            self.track_milestone("room_focus", {"room_name": room_name, "time_spent": time_spent})

    # --- Milestones ---

    def track_share(self, platform: str) -> bool:
        """Record a share action and report a share_action milestone."""
        if not self.track_action(SHARE, platform, {"platform": platform}):
            return False
        self.track_milestone("share_action", {"platform": platform})
        return True

    def track_milestone(
        self,
        milestone_type: str,
        milestone_data: dict[str, Any],
    ) -> MilestoneRecordResult | None:
        """
        Report a milestone to the service, best effort.

        The service recomputes milestones authoritatively at completion,
        so failures here are logged and dropped.
        """
        if not self._session_created:
            return None
        try:
            result = self._persistence.record_milestone(
                self._session_id,
                milestone_type,
                milestone_data,
                self._config.user_info,
                self._config.property_id,
                self._config.tracking,
            )
        except CollaboratorError as e:
            logger.warning("Milestone %s for session %s not recorded: %s", milestone_type, self._session_id, e)
            return None
        except Exception:
            logger.exception("Unexpected error recording milestone for session %s", self._session_id)
            return None

        if not result.success:
            logger.warning(
                "Milestone %s for session %s rejected: %s",
                milestone_type,
                self._session_id,
                result.error,
            )
        return result

    # --- Completion ---

    def engagement_payload(self) -> dict[str, Any]:
        """Serialize duration, room visits and the action log for completion."""
        with self._lock:
            return self._engagement_payload_locked()

    def _engagement_payload_locked(self) -> dict[str, Any]:
        return {
            "total_duration": self.duration_seconds(),
            "rooms_visited": [visit.model_dump(mode="json") for visit in self._room_visits],
            "actions_taken": [action.model_dump(mode="json") for action in self._actions],
        }

    def stop_tracking(self, reason: str = "user_exit") -> CompletionResult:
        """
        Verify the session exists, then submit the final action log.

        Single-flight: a second call while one is in flight returns skipped.
        Any failure reverts to tracking so the call can be retried.
        """
        with self._lock:
            if self._completion_in_progress:
                logger.debug("Completion already in flight for session %s", self._session_id)
                return CompletionResult(success=False, skipped=True, code="completion_in_progress")
            if self._state != TrackerState.TRACKING or not self._session_created:
                logger.debug("Stop ignored for session %s in state %s", self._session_id, self._state.value)
                return CompletionResult(success=False, skipped=True, code="not_tracking")

            self._completion_in_progress = True
            self._state = TrackerState.COMPLETING
            payload = self._engagement_payload_locked()

        try:
            return self._complete(payload, reason, verify=True)
        finally:
            with self._lock:
                self._completion_in_progress = False

    def _complete(
        self,
        payload: dict[str, Any] | None,
        reason: str,
        verify: bool,
    ) -> CompletionResult:
        try:
            if verify and not self._persistence.verify_exists(self._session_id):
                return self._completion_failed(
                    "verification_failed", "Session not found in database"
                )

            result = self._persistence.complete(
                self._session_id,
                payload,
                self._config.user_info,
                reason,
                self._config.tracking,
            )
        except CollaboratorError as e:
            return self._completion_failed("transient_failure", str(e))
        except Exception as e:
            logger.exception("Unexpected error completing session %s", self._session_id)
            return self._completion_failed("unexpected_error", str(e))

        if not result.success:
            return self._completion_failed("rejected", result.error)

        return self._completion_succeeded(result, reason)

    def _completion_failed(self, code: str, message: str | None) -> CompletionResult:
        with self._lock:
            self._state = TrackerState.TRACKING
        logger.warning(
            "Completion of session %s failed (%s): %s", self._session_id, code, message
        )
        return CompletionResult(success=False, code=code, message=message)

    def _completion_succeeded(self, result: CompleteResult, reason: str) -> CompletionResult:
        with self._lock:
            self._state = TrackerState.COMPLETED
            self._current_room = None
            self._engagement_score = result.engagement_score
        logger.info(
            "Session %s completed (%s): engagement=%s lead_quality=%s milestones=%s",
            self._session_id,
            reason,
            result.engagement_score,
            result.lead_quality_score,
            len(result.milestones),
        )
        return CompletionResult(
            success=True,
            engagement_score=result.engagement_score,
            lead_quality_score=result.lead_quality_score,
            milestones=list(result.milestones),
            event_sent=result.event_sent,
        )

    # --- Teardown ---

    def close(self) -> CompletionResult:
        """
        Tear the tracker down. Idempotent.

        Sends a component_unmount completion only when the session was
        durably created and is still tracking. The teardown payload policy
        decides whether the buffered action log goes with it.
        """
        with self._lock:
            if self._closed:
                return CompletionResult(success=False, skipped=True, code="closed")
            self._closed = True

            should_complete = (
                self._state == TrackerState.TRACKING
                and self._session_created
                and not self._completion_in_progress
            )
            if not should_complete:
                logger.debug(
                    "Teardown of session %s sends nothing (state=%s, created=%s)",
                    self._session_id,
                    self._state.value,
                    self._session_created,
                )
                return CompletionResult(success=False, skipped=True, code="not_tracking")

            self._completion_in_progress = True
            self._state = TrackerState.COMPLETING
            payload = (
                self._engagement_payload_locked()
                if self._config.teardown_payload == "flush"
                else None
            )

        try:
            return self._complete(payload, "component_unmount", verify=False)
        finally:
            with self._lock:
                self._completion_in_progress = False

    def __enter__(self) -> TourSessionTracker:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
