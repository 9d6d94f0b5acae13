"""
Tour session component models.

State, configuration and results for the client-held session state machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Literal

from tour_engine.core.entities import TourKind, TrackingParams, UserInfo
from tour_engine.rules.models import ClientRules

TeardownPayload = Literal["discard", "flush"]


class TrackerState(str, Enum):
    """Lifecycle states of one tour session."""

    IDLE = "idle"
    CREATING = "creating"
    TRACKING = "tracking"
    COMPLETING = "completing"
    COMPLETED = "completed"


# --- Configuration ---


@dataclass(frozen=True)
class TrackerConfig:
    """
    What the tracker needs to know about the tour it follows.

    Attributes:
        property_id: Property being toured
        tour_kind: virtual_3d, realsee or video
        session_hint: Caller-supplied tag folded into the session id
        user_info: Optional visitor contact, forwarded but never stored
        tracking: Optional ad-attribution parameters
        room_focus_threshold_seconds: Dwell time that triggers a room_focus report
        teardown_payload: "discard" sends no action log on teardown,
            "flush" sends the buffered one
    """

    property_id: str
    tour_kind: TourKind
    session_hint: str = ""
    user_info: UserInfo | None = None
    tracking: TrackingParams = field(default_factory=TrackingParams)
    room_focus_threshold_seconds: int = 60
    teardown_payload: TeardownPayload = "discard"

    def with_client_rules(self, rules: ClientRules) -> TrackerConfig:
        return replace(self, teardown_payload=rules.teardown_payload)


# --- Results ---


@dataclass(frozen=True)
class StartResult:
    """Outcome of start_tracking."""

    success: bool
    session_id: str
    skipped: bool = False
    code: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class CompletionResult:
    """
    Outcome of stop_tracking or teardown.

    Codes on failure:
    - verification_failed: the session was never durably created
    - transient_failure: timeout or unreachable service, safe to retry
    - rejected: the service answered but refused the completion
    - unexpected_error: anything else, logged with a traceback
    Codes on skip: not_tracking, completion_in_progress, closed
    """

    success: bool
    skipped: bool = False
    code: str | None = None
    message: str | None = None
    engagement_score: int = 0
    lead_quality_score: int = 0
    milestones: list[dict[str, Any]] = field(default_factory=list)
    event_sent: bool = False
