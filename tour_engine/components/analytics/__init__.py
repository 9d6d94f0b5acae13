"""
Analytics component - Tour session summary and engagement insights.
"""

from .component import (
    build_insights,
    engagement_patterns,
    recommendations_for,
    run_insights,
    run_summary,
    summarize_totals,
    tour_kind_performance,
)
from .models import (
    DEFAULT_RECENT_LIMIT,
    AnalyticsSummary,
    EngagementInsights,
    EngagementPatterns,
    Recommendation,
    SummaryQuery,
    SummaryTotals,
    TourKindPerformance,
)

__all__ = [
    # Component functions
    "run_summary",
    "run_insights",
    # Pure functions
    "build_insights",
    "engagement_patterns",
    "recommendations_for",
    "summarize_totals",
    "tour_kind_performance",
    # Models
    "AnalyticsSummary",
    "EngagementInsights",
    "EngagementPatterns",
    "Recommendation",
    "SummaryQuery",
    "SummaryTotals",
    "TourKindPerformance",
    "DEFAULT_RECENT_LIMIT",
]
