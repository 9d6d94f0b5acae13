"""
Completion component - Server-side tour session lifecycle.

Control flow at completion:
    finalize record -> base scores -> Milestone Detector
        -> Engagement Scorer -> Event Dispatcher -> milestone events

Invariants:
- A session is finalized exactly once; later completions re-run dispatch
  against the stored record without rewriting it
- Contact details are hashed for dispatch and never written to the repo
- Dispatch failure never fails the completion
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from tour_engine.components.attribution import (
    AttributionConfig,
    ContactHash,
    DispatchResult,
    contact_hash,
    dispatch,
    send_milestone_event,
    send_milestone_events,
)
from tour_engine.components.engagement import ScoringConfig, run_base_scores
from tour_engine.components.milestones import (
    Milestone,
    MilestoneConfig,
    build_reported_milestone,
    detect,
    is_valid_kind,
)
from tour_engine.core.entities import TourSession, TrackingParams, UserInfo
from tour_engine.core.ports import (
    AttributionPort,
    SessionExistsError,
    SessionNotFoundError,
    TimePort,
    TourSessionRepoPort,
)
from tour_engine.rules.models import Rules

from .models import (
    CompleteSessionResult,
    EngagementPayload,
    MilestoneReportResult,
    NextAction,
    Priority,
    Recommendations,
    RetryReport,
    SessionStatus,
    StartSessionResult,
    VerifyResult,
)

logger = logging.getLogger(__name__)

NEXT_MILESTONE_TARGETS: dict[str, list[str]] = {
    "room_focus": ["interaction_burst", "share_action", "completion"],
    "interaction_burst": ["room_focus", "completion", "share_action"],
    "completion": ["share_action", "return_visit"],
    "share_action": ["return_visit", "completion"],
    "return_visit": ["completion", "interaction_burst"],
}


# --- Pure Functions ---


def recommend(session: TourSession) -> Recommendations:
    """Follow-up guidance from the stored engagement and lead quality."""
    engagement = session.engagement_score
    lead_quality = session.lead_quality_score

    priority: Priority = "low"
    if lead_quality >= 30:
        priority = "high"
    elif lead_quality >= 15:
        priority = "medium"

    next_action: NextAction = "add_to_nurture"
    if engagement >= 60:
        next_action = "contact_immediately"
    elif engagement >= 30:
        next_action = "schedule_follow_up"

    return Recommendations(
        should_track_lead=engagement >= 40,
        follow_up_priority=priority,
        next_action=next_action,
    )


def classify_engagement(engagement_score: int) -> Priority:
    """Coarse label for a stored engagement score."""
    if engagement_score >= 50:
        return "high"
    if engagement_score >= 25:
        return "medium"
    return "low"


def finalize_session(
    session: TourSession,
    payload: EngagementPayload | None,
    reason: str,
    ended_at: datetime,
    tracking: TrackingParams | None = None,
) -> TourSession:
    """
    Apply completion fields to a stored session.

    Payload values win where supplied; stored rooms and actions are kept
    otherwise. Duration falls back to seconds since start.
    """
    payload = payload or EngagementPayload()

    duration = payload.total_duration
    if not duration:
        duration = max(0, int((ended_at - session.started_at).total_seconds()))

    merged_tracking = (tracking or TrackingParams()).merged_over(session.tracking)

    return session.model_copy(
        update={
            "ended_at": ended_at,
            "completed": reason == "completed",
            "completion_reason": reason,
            "total_duration_seconds": duration,
            "rooms_visited": (
                payload.rooms_visited if payload.rooms_visited is not None else session.rooms_visited
            ),
            "actions_taken": (
                payload.actions_taken if payload.actions_taken is not None else session.actions_taken
            ),
            "tracking": merged_tracking,
        }
    )


# --- Service ---


class TourCompletionService:
    """
    Server-side operations on tour sessions.

    Wires the repository, attribution port and clock to the milestone,
    engagement and attribution components.
    """

    def __init__(
        self,
        repo: TourSessionRepoPort,
        attribution: AttributionPort,
        clock: TimePort,
        rules: Rules | None = None,
    ) -> None:
        self._repo = repo
        self._attribution = attribution
        self._clock = clock

        if rules is not None:
            self._milestone_config = MilestoneConfig.from_rules(rules.milestones)
            self._scoring = ScoringConfig.from_rules(rules.scoring)
            self._attribution_config = AttributionConfig.from_rules(rules.attribution)
        else:
            self._milestone_config = MilestoneConfig()
            self._scoring = ScoringConfig()
            self._attribution_config = AttributionConfig()

    # --- Start ---

    def start_session(
        self,
        session_id: str,
        property_id: str,
        tour_type: str,
        user_id: str | None = None,
        tracking: TrackingParams | None = None,
        user_info: UserInfo | None = None,
    ) -> StartSessionResult:
        """
        Persist a new session. A duplicate id is rejected, never overwritten.

        Only whether contact details were given is kept; the details
        themselves are dropped here.
        """
        session = TourSession(
            session_id=session_id,
            property_id=property_id,
            tour_type=tour_type,  # type: ignore[arg-type]
            user_id=user_id,
            contact_provided=user_info is not None and not user_info.is_empty(),
            started_at=self._clock.now_utc(),
            tracking=tracking or TrackingParams(),
        )
        try:
            created = self._repo.create(session)
        except SessionExistsError:
            logger.warning("Rejected duplicate session id %s", session_id)
            return StartSessionResult(success=False, error="session_exists")

        logger.info("Tour session %s started for property %s", session_id, property_id)
        return StartSessionResult(success=True, session=created)

    # --- Verify ---

    def verify_session(self, session_id: str) -> VerifyResult:
        """Status of a session with recomputed milestones and recommendations."""
        session = self._repo.get(session_id)
        if session is None:
            return VerifyResult(success=False, error="not_found")

        status = SessionStatus(
            session=session,
            milestones=detect(session, self._milestone_config),
            recommendations=recommend(session),
        )
        return VerifyResult(success=True, status=status)

    # --- Complete ---

    def complete_session(
        self,
        session_id: str,
        payload: EngagementPayload | None = None,
        user_info: UserInfo | None = None,
        reason: str = "user_exit",
        tracking: TrackingParams | None = None,
    ) -> CompleteSessionResult:
        """
        Finalize a session, then detect milestones and dispatch.

        Args:
            session_id: Session to complete
            payload: Final duration, rooms and actions from the client
            user_info: Optional contact, hashed for dispatch only
            reason: completed, user_exit, timeout or component_unmount
            tracking: Attribution parameters sent with the request

        Returns:
            CompleteSessionResult; error="not_found" for unknown ids
        """
        stored = self._repo.get(session_id)
        if stored is None:
            logger.warning("Completion requested for unknown session %s", session_id)
            return CompleteSessionResult(success=False, error="not_found")

        contact = contact_hash(user_info)
        already_finalized = stored.is_finalized

        if already_finalized:
            logger.info("Session %s already finalized; re-running dispatch only", session_id)
            session = stored
        else:
            finalized = finalize_session(stored, payload, reason, self._clock.now_utc(), tracking)
            scores = run_base_scores(finalized, has_contact=contact is not None)
            finalized = finalized.model_copy(
                update={
                    "engagement_score": scores.engagement_score,
                    "lead_quality_score": scores.lead_quality_score,
                }
            )
            try:
                session = self._repo.save_finalized(finalized)
            except SessionNotFoundError:
                logger.warning("Session %s disappeared before finalize", session_id)
                return CompleteSessionResult(success=False, error="not_found")
            logger.info(
                "Session %s finalized (%s): engagement=%s lead_quality=%s",
                session_id,
                reason,
                session.engagement_score,
                session.lead_quality_score,
            )

        milestones, dispatch_result, milestone_events = self._analyse_and_dispatch(session, contact)

        return CompleteSessionResult(
            success=True,
            session=self._repo.get(session_id) or session,
            milestones=milestones,
            dispatch=dispatch_result,
            milestone_events_sent=milestone_events,
            already_finalized=already_finalized,
        )

    def _analyse_and_dispatch(
        self,
        session: TourSession,
        contact: ContactHash | None,
    ) -> tuple[list[Milestone], DispatchResult, int]:
        milestones = detect(session, self._milestone_config)
        result = dispatch(
            session,
            milestones,
            attribution=self._attribution,
            repo=self._repo,
            clock=self._clock,
            contact=contact,
            scoring=self._scoring,
            config=self._attribution_config,
        )

        milestone_events = 0
        if result.sent and milestones:
            milestone_events = send_milestone_events(
                session,
                milestones,
                attribution=self._attribution,
                contact=contact,
                config=self._attribution_config,
            )
        return milestones, result, milestone_events

    # --- Client-reported milestones ---

    def record_milestone(
        self,
        session_id: str,
        milestone_type: str,
        milestone_data: dict[str, Any] | None,
        user_info: UserInfo | None,
        property_id: str,
        tracking: TrackingParams | None = None,
    ) -> MilestoneReportResult:
        """
        Value a milestone reported during the tour and send it when significant.

        Milestones are not stored; the authoritative set is recomputed at
        completion.
        """
        if not is_valid_kind(milestone_type):
            return MilestoneReportResult(success=False, error="invalid_milestone_type")

        milestone = build_reported_milestone(
            milestone_type,
            milestone_data,
            self._clock.now_utc(),
            self._milestone_config,
        )
        should_track = milestone.value_score >= self._attribution_config.realtime_milestone_min_value

        event_sent = False
        if should_track:
            result = send_milestone_event(
                milestone,
                session_id=session_id,
                property_id=property_id,
                attribution=self._attribution,
                contact=contact_hash(user_info),
                tracking=tracking,
                config=self._attribution_config,
            )
            event_sent = result.success

        logger.info(
            "Milestone %s reported for session %s: value=%s event_sent=%s",
            milestone_type,
            session_id,
            milestone.value_score,
            event_sent,
        )

        priority: Priority = "low"
        if milestone.value_score >= 30:
            priority = "high"
        elif milestone.value_score >= 15:
            priority = "medium"

        return MilestoneReportResult(
            success=True,
            milestone=milestone,
            event_sent=event_sent,
            should_track=should_track,
            follow_up_priority=priority,
            next_milestone_targets=NEXT_MILESTONE_TARGETS.get(milestone_type, ["completion"]),
        )

    # --- Retry ---

    def retry_pending_dispatches(self, limit: int = 100) -> RetryReport:
        """Re-run detection and dispatch for finalized sessions not yet sent."""
        attempted = sent = failed = 0
        details: list[dict[str, Any]] = []

        for session in self._repo.list_pending_dispatch(limit=limit):
            attempted += 1
            milestones, result, _ = self._analyse_and_dispatch(session, contact=None)
            if result.sent:
                sent += 1
            elif not result.success:
                failed += 1
            details.append(
                {
                    "session_id": session.session_id,
                    "success": result.success,
                    "skipped": result.skipped,
                    "event_id": result.event_id,
                    "milestones": len(milestones),
                    "error": result.error,
                }
            )

        logger.info(
            "Retry pass: attempted=%s sent=%s failed=%s", attempted, sent, failed
        )
        return RetryReport(attempted=attempted, sent=sent, failed=failed, details=details)
