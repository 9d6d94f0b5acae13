"""
Completion component - Server-side session lifecycle and dispatch orchestration.
"""

from .component import (
    NEXT_MILESTONE_TARGETS,
    TourCompletionService,
    classify_engagement,
    finalize_session,
    recommend,
)
from .models import (
    CompleteSessionResult,
    EngagementPayload,
    MilestoneReportResult,
    Recommendations,
    RetryReport,
    SessionStatus,
    StartSessionResult,
    VerifyResult,
)

__all__ = [
    # Service
    "TourCompletionService",
    # Pure functions
    "classify_engagement",
    "finalize_session",
    "recommend",
    "NEXT_MILESTONE_TARGETS",
    # Models
    "CompleteSessionResult",
    "EngagementPayload",
    "MilestoneReportResult",
    "Recommendations",
    "RetryReport",
    "SessionStatus",
    "StartSessionResult",
    "VerifyResult",
]
