"""
Analytics component models.

Aggregate views over stored tour sessions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from tour_engine.core.entities import TourSession

Priority = Literal["high", "medium", "low"]

DEFAULT_RECENT_LIMIT = 20


# --- Input Models ---


@dataclass(frozen=True)
class SummaryQuery:
    """Filters for a summary. A date range applies to session start time."""

    property_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    recent_limit: int = DEFAULT_RECENT_LIMIT


# --- Output Models ---


@dataclass(frozen=True)
class SummaryTotals:
    """Aggregate counts and rates."""

    total_sessions: int = 0
    completed_sessions: int = 0
    completion_rate: float = 0.0
    average_engagement_score: int = 0
    events_sent: int = 0
    event_rate: float = 0.0


@dataclass(frozen=True)
class AnalyticsSummary:
    """Totals plus the most recent session records."""

    totals: SummaryTotals
    recent_sessions: list[TourSession] = field(default_factory=list)


@dataclass(frozen=True)
class EngagementPatterns:
    """Engagement bands across the selected sessions."""

    high_engagement: int
    medium_engagement: int
    low_engagement: int
    average_duration: float
    completion_rate: float


@dataclass(frozen=True)
class TourKindPerformance:
    """Per tour kind counts and averages."""

    tour_type: str
    count: int
    average_engagement: float
    completion_rate: float


@dataclass(frozen=True)
class Recommendation:
    """One optimization hint."""

    type: str
    priority: Priority
    message: str
    metric_value: float


@dataclass(frozen=True)
class EngagementInsights:
    """Patterns, per-kind performance and recommendations. Empty for no sessions."""

    patterns: EngagementPatterns | None = None
    tour_kind_performance: list[TourKindPerformance] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
