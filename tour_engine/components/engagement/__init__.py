"""
Engagement component - Session scoring and event tiers.
"""

from .component import (
    calculate_total_score,
    classify_tier,
    compute_engagement_score,
    compute_lead_quality_score,
    run_base_scores,
    run_score,
)
from .models import (
    DEFAULT_SCORING,
    DEFAULT_TIER_EVENTS,
    BaseScores,
    EngagementScore,
    EventTier,
    ScoringConfig,
    TierEvent,
)

__all__ = [
    # Component functions
    "run_score",
    "run_base_scores",
    # Pure functions
    "calculate_total_score",
    "classify_tier",
    "compute_engagement_score",
    "compute_lead_quality_score",
    # Models
    "BaseScores",
    "EngagementScore",
    "EventTier",
    "ScoringConfig",
    "TierEvent",
    "DEFAULT_SCORING",
    "DEFAULT_TIER_EVENTS",
]
