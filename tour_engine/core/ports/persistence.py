"""
Client-side session persistence port.

The interface the Session State Machine uses to reach the tour service.
Every call must be bounded by a timeout.

Failure contract:
- Transient failures (timeout, connection) raise CollaboratorError subclasses
- Rejections by the service come back as results with success=False
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from tour_engine.core.entities import TrackingParams, UserInfo

# --- Results ---


@dataclass(frozen=True)
class CreateResult:
    """Result of a create request."""

    success: bool
    error: str | None = None


@dataclass(frozen=True)
class CompleteResult:
    """Result of a completion request."""

    success: bool
    engagement_score: int = 0
    lead_quality_score: int = 0
    milestones: list[dict[str, Any]] = field(default_factory=list)
    event_sent: bool = False
    error: str | None = None


@dataclass(frozen=True)
class MilestoneRecordResult:
    """Result of a milestone report."""

    success: bool
    value_score: int = 0
    error: str | None = None


# --- Port Interface ---


class SessionPersistencePort(Protocol):
    """Port for the tour service as seen from the client."""

    def create(
        self,
        session_id: str,
        property_id: str,
        tour_kind: str,
        user_info: UserInfo | None = None,
        tracking: TrackingParams | None = None,
    ) -> CreateResult:
        """Create the durable session record."""
        ...

    def verify_exists(self, session_id: str) -> bool:
        """Check that the session record exists."""
        ...

    def complete(
        self,
        session_id: str,
        engagement_payload: dict[str, Any] | None,
        user_info: UserInfo | None,
        completion_reason: str,
        tracking: TrackingParams | None = None,
    ) -> CompleteResult:
        """Submit the final action log and finalize the session."""
        ...

    def record_milestone(
        self,
        session_id: str,
        milestone_type: str,
        milestone_data: dict[str, Any],
        user_info: UserInfo | None,
        property_id: str,
        tracking: TrackingParams | None = None,
    ) -> MilestoneRecordResult:
        """Report a milestone observed on the client."""
        ...


# --- Error Types ---


class CollaboratorError(Exception):
    """Base exception for transient collaborator failures."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class CollaboratorTimeoutError(CollaboratorError):
    """The collaborator did not answer within the configured timeout."""


class CollaboratorUnavailableError(CollaboratorError):
    """The collaborator could not be reached or answered with a server error."""
