"""
Completion component models.

Inputs and results for the server-side session lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

from tour_engine.components.attribution import DispatchResult
from tour_engine.components.milestones import Milestone
from tour_engine.core.entities import RoomVisit, TourAction, TourSession

Priority = Literal["high", "medium", "low"]
NextAction = Literal["contact_immediately", "schedule_follow_up", "add_to_nurture"]


# --- Inputs ---


class EngagementPayload(BaseModel):
    """Final engagement data submitted by the client at completion."""

    total_duration: int | None = Field(default=None, ge=0)
    rooms_visited: list[RoomVisit] | None = None
    actions_taken: list[TourAction] | None = None


# --- Results ---


@dataclass(frozen=True)
class StartSessionResult:
    """Result of creating a session record."""

    success: bool
    session: TourSession | None = None
    error: str | None = None  # session_exists


@dataclass(frozen=True)
class Recommendations:
    """Follow-up guidance derived from the stored scores."""

    should_track_lead: bool
    follow_up_priority: Priority
    next_action: NextAction


@dataclass(frozen=True)
class SessionStatus:
    """Current state of a session with recomputed milestones."""

    session: TourSession
    milestones: list[Milestone] = field(default_factory=list)
    recommendations: Recommendations | None = None


@dataclass(frozen=True)
class VerifyResult:
    """Result of a status lookup."""

    success: bool
    status: SessionStatus | None = None
    error: str | None = None  # not_found


@dataclass(frozen=True)
class CompleteSessionResult:
    """
    Result of finalizing a session.

    Dispatch failures do not make the completion fail; they show up in
    dispatch.success and leave the session eligible for a retry.
    """

    success: bool
    session: TourSession | None = None
    milestones: list[Milestone] = field(default_factory=list)
    dispatch: DispatchResult | None = None
    milestone_events_sent: int = 0
    already_finalized: bool = False
    error: str | None = None  # not_found

    @property
    def event_sent(self) -> bool:
        return self.dispatch is not None and self.dispatch.sent


@dataclass(frozen=True)
class MilestoneReportResult:
    """Result of a client-reported milestone."""

    success: bool
    milestone: Milestone | None = None
    event_sent: bool = False
    should_track: bool = False
    follow_up_priority: Priority = "low"
    next_milestone_targets: list[str] = field(default_factory=list)
    error: str | None = None  # invalid_milestone_type


@dataclass(frozen=True)
class RetryReport:
    """Counts from a pass over sessions whose event is still pending."""

    attempted: int = 0
    sent: int = 0
    failed: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)
