from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from tour_engine.components.completion import EngagementPayload
from tour_engine.core.entities import TourSession, TrackingParams, UserInfo

# --- Shared Enums/Types ---
TourType = Literal["virtual_3d", "realsee", "video"]
CompletionReason = Literal["completed", "user_exit", "timeout", "component_unmount"]
Priority = Literal["high", "medium", "low"]


# --- Tracking ---
class TrackingFields(BaseModel):
    """Attribution identifiers accepted on every tour request body."""

    fbclid: str | None = None
    fbp: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None

    def to_tracking(self) -> TrackingParams:
        return TrackingParams(
            fbclid=self.fbclid,
            fbp=self.fbp,
            utm_source=self.utm_source,
            utm_medium=self.utm_medium,
            utm_campaign=self.utm_campaign,
        )


# --- Start ---
class StartTourRequest(TrackingFields):
    session_id: str = Field(min_length=1, max_length=200)
    property_id: str = Field(min_length=1)
    tour_type: TourType
    user_id: str | None = None
    user_info: UserInfo | None = None


class StartTourResponse(BaseModel):
    success: bool = True
    session_id: str
    started_at: datetime


# --- Complete ---
class CompleteTourRequest(TrackingFields):
    final_engagement_data: EngagementPayload | None = None
    user_info: UserInfo | None = None
    completion_reason: CompletionReason = "user_exit"


class CompleteTourResponse(BaseModel):
    success: bool = True
    session_id: str
    engagement_score: int
    lead_quality_score: int
    completion_reason: str | None
    duration_seconds: int
    rooms_visited: int
    actions_taken: int
    milestones: list[dict[str, Any]]
    event_sent: bool
    event_id: str | None = None
    already_finalized: bool = False


class RecommendationsModel(BaseModel):
    should_track_lead: bool
    follow_up_priority: Priority
    next_action: str


class TourStatusResponse(BaseModel):
    success: bool = True
    session: TourSession
    engagement_level: Priority
    milestones: list[dict[str, Any]]
    recommendations: RecommendationsModel


# --- Milestone ---
class MilestoneRequest(TrackingFields):
    milestone_type: str
    milestone_data: dict[str, Any] = Field(default_factory=dict)
    user_info: UserInfo | None = None
    property_id: str


class MilestoneResponse(BaseModel):
    success: bool = True
    milestone_type: str
    value_score: int
    event_sent: bool
    should_track: bool
    follow_up_priority: Priority
    next_milestone_targets: list[str]


# --- Analytics ---
class SummaryTotalsModel(BaseModel):
    total_sessions: int
    completed_sessions: int
    completion_rate: float
    average_engagement_score: int
    events_sent: int
    event_rate: float


class EngagementPatternsModel(BaseModel):
    high_engagement: int
    medium_engagement: int
    low_engagement: int
    average_duration: float
    completion_rate: float


class TourKindPerformanceModel(BaseModel):
    tour_type: str
    count: int
    average_engagement: float
    completion_rate: float


class RecommendationModel(BaseModel):
    type: str
    priority: Priority
    message: str
    metric_value: float


class EngagementInsightsModel(BaseModel):
    engagement_patterns: EngagementPatternsModel | None = None
    tour_type_performance: list[TourKindPerformanceModel] = Field(default_factory=list)
    optimization_recommendations: list[RecommendationModel] = Field(default_factory=list)


class TourAnalyticsResponse(BaseModel):
    success: bool = True
    summary: SummaryTotalsModel
    recent_sessions: list[TourSession]
    engagement_insights: EngagementInsightsModel | None = None
