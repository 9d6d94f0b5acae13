"""
Milestone component models.

Milestones are derived from the action log and never stored as rows of
their own; payloads are a tagged union keyed by milestone kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from tour_engine.rules.models import MilestoneRules

MilestoneKind = Literal[
    "room_focus",
    "interaction_burst",
    "completion",
    "return_visit",
    "share_action",
]

MILESTONE_KINDS: tuple[str, ...] = (
    "room_focus",
    "interaction_burst",
    "completion",
    "return_visit",
    "share_action",
)


# --- Payloads ---


@dataclass(frozen=True)
class RoomFocusPayload:
    """Room focus: where and for how long."""

    room_name: str
    dwell_seconds: int


@dataclass(frozen=True)
class InteractionBurstPayload:
    """Interaction burst: how many actions fell in the window."""

    interaction_count: int


@dataclass(frozen=True)
class SharePayload:
    """Share action: the platform shared to."""

    platform: str | None = None


MilestonePayload = RoomFocusPayload | InteractionBurstPayload | SharePayload | None


# --- Milestone ---


@dataclass(frozen=True)
class Milestone:
    """A scored behavioral milestone (value_score 1-100)."""

    kind: MilestoneKind
    value_score: int
    timestamp: datetime
    payload: MilestonePayload = None

    @property
    def room_name(self) -> str | None:
        if isinstance(self.payload, RoomFocusPayload):
            return self.payload.room_name
        return None

    @property
    def interaction_count(self) -> int | None:
        if isinstance(self.payload, InteractionBurstPayload):
            return self.payload.interaction_count
        return None

    def to_dict(self) -> dict[str, Any]:
        """Wire shape used by the HTTP surface and the client."""
        data: dict[str, Any] = {
            "type": self.kind,
            "value_score": self.value_score,
            "timestamp": self.timestamp.isoformat(),
        }
        if isinstance(self.payload, RoomFocusPayload):
            data["room_name"] = self.payload.room_name
            data["time_spent"] = self.payload.dwell_seconds
        elif isinstance(self.payload, InteractionBurstPayload):
            data["interaction_count"] = self.payload.interaction_count
        elif isinstance(self.payload, SharePayload):
            data["platform"] = self.payload.platform
        return data


@dataclass(frozen=True)
class BurstWindow:
    """A qualifying run of actions inside one sliding window."""

    count: int
    started_at: datetime


# --- Configuration ---

DEFAULT_ROOM_MULTIPLIERS: tuple[tuple[str, float], ...] = (
    ("master_bedroom", 2.0),
    ("kitchen", 1.8),
    ("bedroom", 1.5),
    ("living_room", 1.2),
    ("terrace", 1.4),
    ("balcony", 1.3),
    ("bathroom", 1.0),
)


@dataclass(frozen=True)
class MilestoneConfig:
    """Detection thresholds and values."""

    room_focus_threshold_seconds: int = 60
    room_focus_time_cap: float = 20.0
    room_multipliers: tuple[tuple[str, float], ...] = field(
        default_factory=lambda: DEFAULT_ROOM_MULTIPLIERS
    )
    burst_window_seconds: int = 30
    burst_min_actions: int = 5
    burst_points_per_action: int = 5
    burst_value_cap: int = 50
    completion_value: int = 30
    share_action_value: int = 25
    return_visit_value: int = 40

    @classmethod
    def from_rules(cls, rules: MilestoneRules) -> MilestoneConfig:
        multipliers = tuple((m.match.lower(), m.multiplier) for m in rules.room_multipliers)
        return cls(
            room_focus_threshold_seconds=rules.room_focus_threshold_seconds,
            room_focus_time_cap=rules.room_focus_time_cap,
            room_multipliers=multipliers or DEFAULT_ROOM_MULTIPLIERS,
            burst_window_seconds=rules.burst_window_seconds,
            burst_min_actions=rules.burst_min_actions,
            burst_points_per_action=rules.burst_points_per_action,
            burst_value_cap=rules.burst_value_cap,
            completion_value=rules.completion_value,
            share_action_value=rules.share_action_value,
            return_visit_value=rules.return_visit_value,
        )


DEFAULT_CONFIG = MilestoneConfig()
