"""
Attribution component models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from tour_engine.rules.models import AttributionRules

ContactKind = Literal["em", "ph"]


@dataclass(frozen=True)
class ContactHash:
    """SHA-256 of a normalized email ("em") or phone ("ph")."""

    value: str
    kind: ContactKind = "em"


@dataclass(frozen=True)
class MilestoneEventSpec:
    """Which external event a milestone kind maps to, and its value scaling."""

    event_name: str
    value_multiplier: float = 1.0


DEFAULT_MILESTONE_EVENTS: dict[str, MilestoneEventSpec] = {
    "room_focus": MilestoneEventSpec("Search"),
    "interaction_burst": MilestoneEventSpec("ViewContent"),
    "completion": MilestoneEventSpec("AddToCart", 2.0),
    "return_visit": MilestoneEventSpec("AddToCart", 1.5),
    "share_action": MilestoneEventSpec("Share"),
}


@dataclass(frozen=True)
class AttributionConfig:
    """Dispatch settings."""

    enabled: bool = True
    currency: str = "EGP"
    completion_milestone_min_value: int = 20
    realtime_milestone_min_value: int = 15
    milestone_events: dict[str, MilestoneEventSpec] = field(
        default_factory=lambda: dict(DEFAULT_MILESTONE_EVENTS)
    )

    @classmethod
    def from_rules(cls, rules: AttributionRules) -> AttributionConfig:
        events = dict(DEFAULT_MILESTONE_EVENTS)
        for kind, rule in rules.milestone_events.items():
            events[kind] = MilestoneEventSpec(rule.event_name, rule.value_multiplier)
        return cls(
            enabled=rules.enabled,
            currency=rules.currency,
            completion_milestone_min_value=rules.completion_milestone_min_value,
            realtime_milestone_min_value=rules.realtime_milestone_min_value,
            milestone_events=events,
        )


DEFAULT_ATTRIBUTION = AttributionConfig()


@dataclass(frozen=True)
class DispatchResult:
    """
    Outcome of a dispatch attempt.

    skipped=True with success=True means nothing was sent because the
    session already carries a sent event (or attribution is disabled).
    A failed dispatch leaves event_sent untouched so it can be retried.
    """

    success: bool
    skipped: bool = False
    event_id: str | None = None
    event_name: str | None = None
    tier: str | None = None
    total_score: int | None = None
    error: str | None = None

    @property
    def sent(self) -> bool:
        return self.success and not self.skipped
