"""
Milestones component - Behavioral milestone detection.

Pure detection over the action log plus valuation of client-reported milestones.
"""

from .component import (
    build_reported_milestone,
    burst_value,
    clamp_value_score,
    detect,
    detect_interaction_bursts,
    is_valid_kind,
    reconstruct_room_time,
    reported_value,
    room_focus_value,
    room_multiplier,
    round_half_up,
)
from .models import (
    DEFAULT_CONFIG,
    DEFAULT_ROOM_MULTIPLIERS,
    MILESTONE_KINDS,
    BurstWindow,
    InteractionBurstPayload,
    Milestone,
    MilestoneConfig,
    MilestoneKind,
    MilestonePayload,
    RoomFocusPayload,
    SharePayload,
)

__all__ = [
    # Component functions
    "detect",
    "build_reported_milestone",
    # Pure functions
    "reconstruct_room_time",
    "room_multiplier",
    "room_focus_value",
    "detect_interaction_bursts",
    "burst_value",
    "reported_value",
    "is_valid_kind",
    "clamp_value_score",
    "round_half_up",
    # Models
    "Milestone",
    "MilestoneKind",
    "MilestonePayload",
    "MilestoneConfig",
    "RoomFocusPayload",
    "InteractionBurstPayload",
    "SharePayload",
    "BurstWindow",
    "MILESTONE_KINDS",
    "DEFAULT_CONFIG",
    "DEFAULT_ROOM_MULTIPLIERS",
]
