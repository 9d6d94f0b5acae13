"""
Engagement component models.

Tier configuration, score results and the base scores persisted at completion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from tour_engine.rules.models import ScoringRules

EventTier = Literal["low", "medium", "high"]


# --- Configuration ---


@dataclass(frozen=True)
class TierEvent:
    """External event name and nominal value for one tier."""

    event_name: str
    value: int


DEFAULT_TIER_EVENTS: dict[str, TierEvent] = {
    "high": TierEvent(event_name="AddToCart", value=100),
    "medium": TierEvent(event_name="ViewContent", value=50),
    "low": TierEvent(event_name="PageView", value=10),
}


@dataclass(frozen=True)
class ScoringConfig:
    """Tier thresholds and per-tier events."""

    high_threshold: int = 80
    medium_threshold: int = 50
    tier_events: dict[str, TierEvent] = field(default_factory=lambda: dict(DEFAULT_TIER_EVENTS))

    @classmethod
    def from_rules(cls, rules: ScoringRules) -> ScoringConfig:
        events = dict(DEFAULT_TIER_EVENTS)
        for tier, tier_event in rules.tiers.items():
            events[tier] = TierEvent(event_name=tier_event.event_name, value=tier_event.value)
        return cls(
            high_threshold=rules.high_threshold,
            medium_threshold=rules.medium_threshold,
            tier_events=events,
        )


DEFAULT_SCORING = ScoringConfig()


# --- Output Models ---


@dataclass(frozen=True)
class EngagementScore:
    """
    Total score for a session and the tier it falls into.

    total_score is the stored base engagement plus every milestone value;
    it is not capped at 100.
    """

    base_score: int
    milestone_score: int
    total_score: int
    tier: EventTier
    event_name: str
    event_value: int


@dataclass(frozen=True)
class BaseScores:
    """Scores persisted on the session record at completion."""

    engagement_score: int  # 0-100
    lead_quality_score: int  # 0-65
