"""
Tour session component - Client-held session state machine.
"""

from .component import (
    TourSessionTracker,
    generate_session_id,
    to_base36,
)
from .models import (
    CompletionResult,
    StartResult,
    TeardownPayload,
    TrackerConfig,
    TrackerState,
)

__all__ = [
    # State machine
    "TourSessionTracker",
    "generate_session_id",
    "to_base36",
    # Models
    "CompletionResult",
    "StartResult",
    "TeardownPayload",
    "TrackerConfig",
    "TrackerState",
]
