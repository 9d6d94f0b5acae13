"""
Tour analytics API.

Summary counts, recent sessions and engagement insights for dashboards.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from tour_engine.adapters.sqlite_db import SQLiteTourSessionRepo
from tour_engine.api.deps import get_tour_repo
from tour_engine.api.schemas import (
    EngagementInsightsModel,
    EngagementPatternsModel,
    RecommendationModel,
    SummaryTotalsModel,
    TourAnalyticsResponse,
    TourKindPerformanceModel,
)
from tour_engine.components.analytics import (
    DEFAULT_RECENT_LIMIT,
    SummaryQuery,
    run_insights,
    run_summary,
)

router = APIRouter()


@router.get("", response_model=TourAnalyticsResponse)
def get_tour_analytics(
    property_id: str | None = Query(None, description="Restrict to one property"),
    start_date: datetime | None = Query(None, description="Sessions started at or after"),
    end_date: datetime | None = Query(None, description="Sessions started at or before"),
    limit: int = Query(DEFAULT_RECENT_LIMIT, ge=0, le=500, description="Recent sessions"),
    include_insights: bool = Query(True),
    repo: SQLiteTourSessionRepo = Depends(get_tour_repo),
) -> TourAnalyticsResponse:
    query = SummaryQuery(
        property_id=property_id,
        start=start_date,
        end=end_date,
        recent_limit=limit,
    )
    summary = run_summary(query, repo)
    totals = summary.totals

    insights_model: EngagementInsightsModel | None = None
    if include_insights:
        insights = run_insights(query, repo)
        patterns = insights.patterns
        insights_model = EngagementInsightsModel(
            engagement_patterns=(
                EngagementPatternsModel(
                    high_engagement=patterns.high_engagement,
                    medium_engagement=patterns.medium_engagement,
                    low_engagement=patterns.low_engagement,
                    average_duration=patterns.average_duration,
                    completion_rate=patterns.completion_rate,
                )
                if patterns
                else None
            ),
            tour_type_performance=[
                TourKindPerformanceModel(
                    tour_type=p.tour_type,
                    count=p.count,
                    average_engagement=p.average_engagement,
                    completion_rate=p.completion_rate,
                )
                for p in insights.tour_kind_performance
            ],
            optimization_recommendations=[
                RecommendationModel(
                    type=r.type,
                    priority=r.priority,
                    message=r.message,
                    metric_value=r.metric_value,
                )
                for r in insights.recommendations
            ],
        )

    return TourAnalyticsResponse(
        summary=SummaryTotalsModel(
            total_sessions=totals.total_sessions,
            completed_sessions=totals.completed_sessions,
            completion_rate=totals.completion_rate,
            average_engagement_score=totals.average_engagement_score,
            events_sent=totals.events_sent,
            event_rate=totals.event_rate,
        ),
        recent_sessions=summary.recent_sessions,
        engagement_insights=insights_model,
    )
