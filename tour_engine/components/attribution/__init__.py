"""
Attribution component - Idempotent conversion event dispatch.
"""

from .component import (
    build_milestone_event,
    build_tour_event,
    contact_hash,
    dispatch,
    hash_email,
    hash_phone,
    make_event_id,
    normalize_phone,
    send_milestone_event,
    send_milestone_events,
)
from .models import (
    DEFAULT_ATTRIBUTION,
    DEFAULT_MILESTONE_EVENTS,
    AttributionConfig,
    ContactHash,
    DispatchResult,
    MilestoneEventSpec,
)

__all__ = [
    # Component functions
    "dispatch",
    "send_milestone_event",
    "send_milestone_events",
    # Pure functions
    "build_tour_event",
    "build_milestone_event",
    "contact_hash",
    "hash_email",
    "hash_phone",
    "normalize_phone",
    "make_event_id",
    # Models
    "AttributionConfig",
    "ContactHash",
    "DispatchResult",
    "MilestoneEventSpec",
    "DEFAULT_ATTRIBUTION",
    "DEFAULT_MILESTONE_EVENTS",
]
