"""
Analytics component - Tour session summary and engagement insights.

Invariants:
- Rates are 0 when no sessions match
- Average engagement is rounded half-up to an integer
- Recent sessions are newest first, capped at the requested limit
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from tour_engine.components.milestones import round_half_up
from tour_engine.core.entities import TourSession
from tour_engine.core.ports import TourSessionRepoPort

from .models import (
    AnalyticsSummary,
    EngagementInsights,
    EngagementPatterns,
    Recommendation,
    SummaryQuery,
    SummaryTotals,
    TourKindPerformance,
)

logger = logging.getLogger(__name__)

HIGH_ENGAGEMENT = 70
MEDIUM_ENGAGEMENT = 40
LOW_COMPLETION_RATE = 0.3
SHORT_TOUR_SECONDS = 120


# --- Pure Functions ---


def _rate(part: int, whole: int) -> float:
    return part / whole if whole > 0 else 0.0


def summarize_totals(totals: dict[str, int]) -> SummaryTotals:
    """Turn raw repository counts into rates and averages."""
    total = totals.get("total_sessions", 0)
    completed = totals.get("completed_sessions", 0)
    sent = totals.get("events_sent", 0)
    engagement_sum = totals.get("engagement_sum", 0)

    return SummaryTotals(
        total_sessions=total,
        completed_sessions=completed,
        completion_rate=_rate(completed, total),
        average_engagement_score=round_half_up(engagement_sum / total) if total else 0,
        events_sent=sent,
        event_rate=_rate(sent, total),
    )


def engagement_patterns(sessions: Sequence[TourSession]) -> EngagementPatterns | None:
    if not sessions:
        return None
    count = len(sessions)
    return EngagementPatterns(
        high_engagement=sum(1 for s in sessions if s.engagement_score >= HIGH_ENGAGEMENT),
        medium_engagement=sum(
            1 for s in sessions if MEDIUM_ENGAGEMENT <= s.engagement_score < HIGH_ENGAGEMENT
        ),
        low_engagement=sum(1 for s in sessions if s.engagement_score < MEDIUM_ENGAGEMENT),
        average_duration=sum(s.total_duration_seconds for s in sessions) / count,
        completion_rate=sum(1 for s in sessions if s.completed) / count,
    )


def tour_kind_performance(sessions: Sequence[TourSession]) -> list[TourKindPerformance]:
    """Per-kind performance, best average engagement first."""
    grouped: dict[str, list[TourSession]] = {}
    for session in sessions:
        grouped.setdefault(session.tour_type, []).append(session)

    performance = [
        TourKindPerformance(
            tour_type=kind,
            count=len(group),
            average_engagement=sum(s.engagement_score for s in group) / len(group),
            completion_rate=sum(1 for s in group if s.completed) / len(group),
        )
        for kind, group in grouped.items()
    ]
    # Stable sort keeps first-seen order among ties
    performance.sort(key=lambda p: p.average_engagement, reverse=True)
    return performance


def recommendations_for(
    patterns: EngagementPatterns,
    performance: Sequence[TourKindPerformance],
) -> list[Recommendation]:
    recs: list[Recommendation] = []

    if patterns.completion_rate < LOW_COMPLETION_RATE:
        recs.append(
            Recommendation(
                type="completion_rate",
                priority="high",
                message=(
                    "Low tour completion rate detected. Consider optimizing tour "
                    "length or adding interactive elements."
                ),
                metric_value=patterns.completion_rate,
            )
        )

    if patterns.average_duration < SHORT_TOUR_SECONDS:
        recs.append(
            Recommendation(
                type="engagement_duration",
                priority="medium",
                message=(
                    "Tours are quite short. Consider adding more engaging content "
                    "or improving tour flow."
                ),
                metric_value=patterns.average_duration,
            )
        )

    if performance:
        best = performance[0]
        recs.append(
            Recommendation(
                type="tour_type_optimization",
                priority="low",
                message=(
                    f"{best.tour_type} tours show highest engagement. "
                    "Consider promoting this tour type."
                ),
                metric_value=best.average_engagement,
            )
        )

    return recs


def build_insights(sessions: Sequence[TourSession]) -> EngagementInsights:
    patterns = engagement_patterns(sessions)
    if patterns is None:
        return EngagementInsights()
    performance = tour_kind_performance(sessions)
    return EngagementInsights(
        patterns=patterns,
        tour_kind_performance=performance,
        recommendations=recommendations_for(patterns, performance),
    )


# --- Component Entry Points ---


def run_summary(query: SummaryQuery, repo: TourSessionRepoPort) -> AnalyticsSummary:
    """
    Aggregate counts plus the most recent sessions.

    Args:
        query: Property and start-time filters, recent-session limit
        repo: Session repository

    Returns:
        AnalyticsSummary
    """
    totals = summarize_totals(repo.get_totals(query.property_id, query.start, query.end))
    recent = repo.list_sessions(
        property_id=query.property_id,
        start=query.start,
        end=query.end,
        limit=max(0, query.recent_limit),
    )
    logger.debug(
        "Summary for property=%s: %s sessions, %s completed",
        query.property_id,
        totals.total_sessions,
        totals.completed_sessions,
    )
    return AnalyticsSummary(totals=totals, recent_sessions=recent)


def run_insights(query: SummaryQuery, repo: TourSessionRepoPort) -> EngagementInsights:
    """Engagement insights over every session matching the filters."""
    sessions = repo.list_sessions(
        property_id=query.property_id,
        start=query.start,
        end=query.end,
    )
    return build_insights(sessions)
