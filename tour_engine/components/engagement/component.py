"""
Engagement component - Session scoring.

Two scores live here:
- Base scores written onto the session record at completion
  (engagement 0-100, lead quality 0-65)
- The total score used to pick the attribution tier: base engagement plus
  the value of every detected milestone

Tier mapping:
- total >= high_threshold OR session completed -> high
- total >= medium_threshold -> medium
- otherwise -> low

Pure and stateless.
"""

from __future__ import annotations

from collections.abc import Sequence

from tour_engine.components.milestones import Milestone
from tour_engine.core.entities import TourSession

from .models import (
    DEFAULT_SCORING,
    BaseScores,
    EngagementScore,
    EventTier,
    ScoringConfig,
)

# --- Base Score Weights ---

MAX_ENGAGEMENT_SCORE = 100
MAX_LEAD_QUALITY_SCORE = 65

SECONDS_PER_DURATION_POINT = 6
MAX_DURATION_POINTS = 40
POINTS_PER_ROOM = 10
MAX_ROOM_POINTS = 30
POINTS_PER_ACTION = 2
MAX_ACTION_POINTS = 20
COMPLETION_BONUS = 10

CONTACT_LEAD_BONUS = 10
COMPLETION_LEAD_BONUS = 5


# --- Pure Functions (Functional Core) ---


def compute_engagement_score(
    duration_seconds: int,
    distinct_rooms: int,
    action_count: int,
    completed: bool,
) -> int:
    """
    Base engagement score from the finalized record.

    Args:
        duration_seconds: Total tour duration
        distinct_rooms: Number of different rooms seen
        action_count: Number of recorded actions
        completed: Whether the tour was completed

    Returns:
        Integer score 0-100
    """
    duration_points = min(max(duration_seconds, 0) / SECONDS_PER_DURATION_POINT, MAX_DURATION_POINTS)
    room_points = min(distinct_rooms * POINTS_PER_ROOM, MAX_ROOM_POINTS)
    action_points = min(action_count * POINTS_PER_ACTION, MAX_ACTION_POINTS)
    bonus = COMPLETION_BONUS if completed else 0

    return min(MAX_ENGAGEMENT_SCORE, int(duration_points + room_points + action_points + bonus))


def compute_lead_quality_score(engagement_score: int, has_contact: bool, completed: bool) -> int:
    """Lead quality 0-65: half the engagement plus contact and completion bonuses."""
    score = engagement_score // 2
    if has_contact:
        score += CONTACT_LEAD_BONUS
    if completed:
        score += COMPLETION_LEAD_BONUS
    return min(MAX_LEAD_QUALITY_SCORE, score)


def calculate_total_score(base_score: int, milestones: Sequence[Milestone]) -> int:
    return base_score + sum(m.value_score for m in milestones)


def classify_tier(
    total_score: int,
    completed: bool,
    config: ScoringConfig = DEFAULT_SCORING,
) -> EventTier:
    """Map a total score onto low/medium/high. Completion alone is enough for high."""
    if total_score >= config.high_threshold or completed:
        return "high"
    if total_score >= config.medium_threshold:
        return "medium"
    return "low"


# --- Component Entry Points ---


def run_base_scores(session: TourSession, has_contact: bool = False) -> BaseScores:
    """
    Compute the scores stored on a session at completion.

    Args:
        session: Finalized session (duration, rooms, actions, completed set)
        has_contact: True when contact details were supplied with the request

    Returns:
        BaseScores with engagement and lead quality
    """
    engagement = compute_engagement_score(
        duration_seconds=session.total_duration_seconds,
        distinct_rooms=len(session.distinct_rooms),
        action_count=len(session.actions_taken),
        completed=session.completed,
    )
    lead_quality = compute_lead_quality_score(
        engagement,
        has_contact=has_contact or session.contact_provided or session.user_id is not None,
        completed=session.completed,
    )
    return BaseScores(engagement_score=engagement, lead_quality_score=lead_quality)


def run_score(
    session: TourSession,
    milestones: Sequence[Milestone],
    config: ScoringConfig | None = None,
) -> EngagementScore:
    """
    Score a session for attribution.

    Args:
        session: Session carrying its stored engagement_score
        milestones: Milestones detected for the session
        config: Optional thresholds and tier events

    Returns:
        EngagementScore with total, tier and the tier's event
    """
    config = config or DEFAULT_SCORING
    milestone_score = sum(m.value_score for m in milestones)
    total = session.engagement_score + milestone_score
    tier = classify_tier(total, session.completed, config)
    tier_event = config.tier_events[tier]

    return EngagementScore(
        base_score=session.engagement_score,
        milestone_score=milestone_score,
        total_score=total,
        tier=tier,
        event_name=tier_event.event_name,
        event_value=tier_event.value,
    )
