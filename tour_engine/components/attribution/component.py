"""
Attribution component - Event dispatch to the ad-attribution service.

Sends at most one tier event per session, guarded by the persisted
event_sent flag, plus optional per-milestone events.

Invariants:
- A session with event_sent=True never reaches the attribution service again
- event_sent/event_id are only written after the service accepted the event
- Dispatch never raises; failures come back as DispatchResult(success=False)

Known limitation: two dispatches racing on the same unsent session can both
reach the service. The conditional flag write keeps the first event_id.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from tour_engine.components.engagement import EngagementScore, ScoringConfig, run_score
from tour_engine.components.milestones import Milestone
from tour_engine.core.entities import TourSession, TrackingParams, UserInfo
from tour_engine.core.ports import (
    AttributionEvent,
    AttributionPort,
    SendEventResult,
    TimePort,
    TourSessionRepoPort,
)

from .models import (
    DEFAULT_ATTRIBUTION,
    AttributionConfig,
    ContactHash,
    DispatchResult,
)

logger = logging.getLogger(__name__)

EGYPT_COUNTRY_CODE = "20"


# --- Contact Hashing ---


def _sha256(value: str) -> str:
    return hashlib.sha256(value.strip().lower().encode("utf-8")).hexdigest()


def hash_email(email: str) -> str:
    """SHA-256 of the trimmed, lower-cased email."""
    return _sha256(email)


def normalize_phone(phone: str) -> str:
    """Digits only, with the Egyptian country code added to local numbers."""
    digits = re.sub(r"\D", "", phone)
    if digits.startswith("01"):
        return EGYPT_COUNTRY_CODE + digits[1:]
    if digits.startswith("201"):
        return digits
    if len(digits) == 10 and digits.startswith("1"):
        return EGYPT_COUNTRY_CODE + digits
    return digits


def hash_phone(phone: str) -> str:
    return _sha256(normalize_phone(phone))


def contact_hash(user_info: UserInfo | None) -> ContactHash | None:
    """Hash the visitor's contact. Email wins over phone."""
    if user_info is None:
        return None
    if user_info.email and user_info.email.strip():
        return ContactHash(value=hash_email(user_info.email), kind="em")
    if user_info.phone and re.sub(r"\D", "", user_info.phone):
        return ContactHash(value=hash_phone(user_info.phone), kind="ph")
    return None


# --- Event Building ---


def make_event_id(session_id: str, epoch_millis: int) -> str:
    return f"tour_{session_id}_{epoch_millis}"


def build_tour_event(
    session: TourSession,
    score: EngagementScore,
    event_id: str,
    contact: ContactHash | None = None,
    milestone_count: int = 0,
    config: AttributionConfig = DEFAULT_ATTRIBUTION,
) -> AttributionEvent:
    """Build the per-session tier event."""
    custom_data: dict[str, Any] = {
        "currency": config.currency,
        "value": score.event_value,
        "content_category": "virtual_tour_engagement",
        "content_name": f"{session.tour_type} Tour",
        "property_id": session.property_id,
        "tour_type": session.tour_type,
        "engagement_score": score.total_score,
        "duration_seconds": session.total_duration_seconds,
        "completed": session.completed,
        "tier": score.tier,
        "milestones_count": milestone_count,
    }
    return _with_identity(
        AttributionEvent(
            event_name=score.event_name,
            custom_data=custom_data,
            event_id=event_id,
        ),
        contact,
        session.tracking,
    )


def build_milestone_event(
    milestone: Milestone,
    property_id: str,
    contact: ContactHash | None = None,
    tracking: TrackingParams | None = None,
    config: AttributionConfig = DEFAULT_ATTRIBUTION,
) -> AttributionEvent | None:
    """
    Build the event for one milestone.

    Returns None when the milestone kind has no configured event.
    """
    mapping = config.milestone_events.get(milestone.kind)
    if mapping is None:
        return None

    custom_data: dict[str, Any] = {
        "currency": config.currency,
        "value": round(milestone.value_score * mapping.value_multiplier, 2),
        "content_category": "virtual_tour_milestone",
        "content_name": f"Tour {milestone.kind}",
        "property_id": property_id,
        "milestone_type": milestone.kind,
        "milestone_value": milestone.value_score,
    }
    if milestone.room_name:
        custom_data["room_name"] = milestone.room_name

    return _with_identity(
        AttributionEvent(event_name=mapping.event_name, custom_data=custom_data),
        contact,
        tracking,
    )


def _with_identity(
    event: AttributionEvent,
    contact: ContactHash | None,
    tracking: TrackingParams | None,
) -> AttributionEvent:
    return replace(
        event,
        contact_hash=contact.value if contact else None,
        contact_kind=contact.kind if contact else "em",
        click_id=tracking.fbclid if tracking else None,
        browser_id=tracking.fbp if tracking else None,
    )


def _safe_send(attribution: AttributionPort, event: AttributionEvent, session_id: str) -> SendEventResult:
    try:
        return attribution.send_event(event)
    except Exception as e:
        logger.exception("Attribution send raised for session %s", session_id)
        return SendEventResult(success=False, error=f"send_error: {e}")


# --- Component Entry Points ---


def dispatch(
    session: TourSession,
    milestones: Sequence[Milestone],
    *,
    attribution: AttributionPort,
    repo: TourSessionRepoPort,
    clock: TimePort,
    contact: ContactHash | None = None,
    scoring: ScoringConfig | None = None,
    config: AttributionConfig | None = None,
) -> DispatchResult:
    """
    Send the session's tier event once.

    Args:
        session: Session as currently stored (event_sent is read here)
        milestones: Milestones detected for the session
        attribution: Attribution service port
        repo: Session repository (records event_sent/event_id)
        clock: Time source for the event id
        contact: Optional contact hash, never persisted
        scoring: Optional tier thresholds
        config: Optional dispatch settings

    Returns:
        DispatchResult; skipped when already sent, failure when the
        service rejected the event or could not be reached
    """
    config = config or DEFAULT_ATTRIBUTION

    if session.event_sent:
        logger.debug("Attribution event already sent for session %s", session.session_id)
        return DispatchResult(success=True, skipped=True, event_id=session.event_id)

    if not config.enabled:
        logger.debug("Attribution disabled; not dispatching session %s", session.session_id)
        return DispatchResult(success=True, skipped=True)

    score = run_score(session, milestones, scoring)
    epoch_millis = int(clock.now_utc().timestamp() * 1000)
    event_id = make_event_id(session.session_id, epoch_millis)
    event = build_tour_event(
        session,
        score,
        event_id,
        contact=contact,
        milestone_count=len(milestones),
        config=config,
    )

    result = _safe_send(attribution, event, session.session_id)
    if not result.success:
        logger.warning(
            "Attribution dispatch failed for session %s: %s",
            session.session_id,
            result.error,
        )
        return DispatchResult(
            success=False,
            event_name=score.event_name,
            tier=score.tier,
            total_score=score.total_score,
            error=result.error or "send_failed",
        )

    try:
        recorded = repo.mark_event_sent(session.session_id, event_id)
    except Exception as e:
        logger.exception("Could not record sent event for session %s", session.session_id)
        return DispatchResult(
            success=False,
            event_name=score.event_name,
            tier=score.tier,
            total_score=score.total_score,
            error=f"record_failed: {e}",
        )

    if not recorded:
        logger.warning(
            "Session %s already had an event recorded; duplicate external event possible",
            session.session_id,
        )
        try:
            stored = repo.get(session.session_id)
        except Exception:
            logger.exception("Could not read recorded event for session %s", session.session_id)
            stored = None
        event_id = stored.event_id if stored and stored.event_id else event_id

    logger.info(
        "Attribution event %s sent for session %s (tier=%s, total=%s, milestones=%s)",
        score.event_name,
        session.session_id,
        score.tier,
        score.total_score,
        len(milestones),
    )
    return DispatchResult(
        success=True,
        event_id=event_id,
        event_name=score.event_name,
        tier=score.tier,
        total_score=score.total_score,
    )


def send_milestone_event(
    milestone: Milestone,
    *,
    session_id: str,
    property_id: str,
    attribution: AttributionPort,
    contact: ContactHash | None = None,
    tracking: TrackingParams | None = None,
    config: AttributionConfig | None = None,
) -> SendEventResult:
    """Send one milestone event. Never raises."""
    config = config or DEFAULT_ATTRIBUTION
    if not config.enabled:
        return SendEventResult(success=False, error="attribution_disabled")

    event = build_milestone_event(milestone, property_id, contact, tracking, config)
    if event is None:
        return SendEventResult(success=False, error="unknown_milestone_type")

    result = _safe_send(attribution, event, session_id)
    if result.success:
        logger.info(
            "Milestone event %s sent for session %s (value=%s)",
            milestone.kind,
            session_id,
            milestone.value_score,
        )
    else:
        logger.warning(
            "Milestone event %s failed for session %s: %s",
            milestone.kind,
            session_id,
            result.error,
        )
    return result


def send_milestone_events(
    session: TourSession,
    milestones: Sequence[Milestone],
    *,
    attribution: AttributionPort,
    contact: ContactHash | None = None,
    config: AttributionConfig | None = None,
) -> int:
    """
    Send one event per milestone worth at least the completion minimum.

    Returns:
        Number of events the service accepted
    """
    config = config or DEFAULT_ATTRIBUTION
    sent = 0
    for milestone in milestones:
        if milestone.value_score < config.completion_milestone_min_value:
            continue
        result = send_milestone_event(
            milestone,
            session_id=session.session_id,
            property_id=session.property_id,
            attribution=attribution,
            contact=contact,
            tracking=session.tracking,
            config=config,
        )
        if result.success:
            sent += 1
    return sent
