from typing import Literal

from pydantic import BaseModel, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class RoomMultiplier(BaseModel):
    match: str
    multiplier: float


class MilestoneRules(BaseModel):
    room_focus_threshold_seconds: int = 60
    room_focus_time_cap: float = 20.0
    # Ordered; first substring match wins
    room_multipliers: list[RoomMultiplier] = Field(default_factory=list)
    burst_window_seconds: int = 30
    burst_min_actions: int = 5
    burst_points_per_action: int = 5
    burst_value_cap: int = 50
    completion_value: int = 30
    share_action_value: int = 25
    return_visit_value: int = 40


class TierEvent(BaseModel):
    event_name: str
    value: int


class ScoringRules(BaseModel):
    high_threshold: int = 80
    medium_threshold: int = 50
    tiers: dict[Literal["high", "medium", "low"], TierEvent]


class MilestoneEvent(BaseModel):
    event_name: str
    value_multiplier: float = 1.0


class AttributionRules(BaseModel):
    enabled: bool = True
    api_version: str = "v18.0"
    timeout_seconds: float = 10.0
    currency: str = "EGP"
    partner_agent: str = "tour-engagement-engine"
    completion_milestone_min_value: int = 20
    realtime_milestone_min_value: int = 15
    milestone_events: dict[str, MilestoneEvent] = Field(default_factory=dict)


class ClientRules(BaseModel):
    request_timeout_seconds: float = 10.0
    teardown_payload: Literal["discard", "flush"] = "discard"


class OpsRules(BaseModel):
    required_env: list[str] = Field(default_factory=list)


class Rules(BaseModel):
    project: ProjectRules
    milestones: MilestoneRules
    scoring: ScoringRules
    attribution: AttributionRules
    client: ClientRules = Field(default_factory=ClientRules)
    ops: OpsRules = Field(default_factory=OpsRules)
