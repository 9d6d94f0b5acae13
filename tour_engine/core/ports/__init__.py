# tour-engagement-engine: Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from tour_engine.core.ports.attribution import (
    AttributionEvent,
    AttributionPort,
    SendEventResult,
)
from tour_engine.core.ports.persistence import (
    CollaboratorError,
    CollaboratorTimeoutError,
    CollaboratorUnavailableError,
    CompleteResult,
    CreateResult,
    MilestoneRecordResult,
    SessionPersistencePort,
)
from tour_engine.core.ports.time import TimePort
from tour_engine.core.ports.tour_repo import (
    SessionExistsError,
    SessionNotFoundError,
    TourSessionRepoPort,
)

__all__ = [
    # Attribution
    "AttributionEvent",
    "AttributionPort",
    "SendEventResult",
    # Client-side persistence
    "CollaboratorError",
    "CollaboratorTimeoutError",
    "CollaboratorUnavailableError",
    "CompleteResult",
    "CreateResult",
    "MilestoneRecordResult",
    "SessionPersistencePort",
    # Time
    "TimePort",
    # Repository
    "SessionExistsError",
    "SessionNotFoundError",
    "TourSessionRepoPort",
]
