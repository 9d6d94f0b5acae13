"""
Tour session API routes.

Start, status, completion and milestone reporting for virtual tours.

Errors:
- 404 unknown session
- 409 duplicate session id on start
- 400 unknown milestone type
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from tour_engine.api.deps import get_completion_service
from tour_engine.api.schemas import (
    CompleteTourRequest,
    CompleteTourResponse,
    MilestoneRequest,
    MilestoneResponse,
    RecommendationsModel,
    StartTourRequest,
    StartTourResponse,
    TourStatusResponse,
)
from tour_engine.components.completion import TourCompletionService, classify_engagement
from tour_engine.components.milestones import MILESTONE_KINDS

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/start", response_model=StartTourResponse)
def start_tour(
    body: StartTourRequest,
    service: TourCompletionService = Depends(get_completion_service),
) -> StartTourResponse:
    """Create the durable session record."""
    result = service.start_session(
        session_id=body.session_id,
        property_id=body.property_id,
        tour_type=body.tour_type,
        user_id=body.user_id,
        tracking=body.to_tracking(),
        user_info=body.user_info,
    )
    if not result.success or result.session is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Tour session already exists: {body.session_id}",
        )
    return StartTourResponse(
        session_id=result.session.session_id,
        started_at=result.session.started_at,
    )


@router.get("/{session_id}/complete", response_model=TourStatusResponse)
def get_tour_status(
    session_id: str,
    service: TourCompletionService = Depends(get_completion_service),
) -> TourStatusResponse:
    """Session status with recomputed milestones and follow-up recommendations."""
    result = service.verify_session(session_id)
    if not result.success or result.status is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tour session not found")

    session = result.status.session
    recs = result.status.recommendations
    return TourStatusResponse(
        session=session,
        engagement_level=classify_engagement(session.engagement_score),
        milestones=[m.to_dict() for m in result.status.milestones],
        recommendations=RecommendationsModel(
            should_track_lead=recs.should_track_lead if recs else False,
            follow_up_priority=recs.follow_up_priority if recs else "low",
            next_action=recs.next_action if recs else "add_to_nurture",
        ),
    )


@router.post("/{session_id}/complete", response_model=CompleteTourResponse)
def complete_tour(
    session_id: str,
    body: CompleteTourRequest,
    service: TourCompletionService = Depends(get_completion_service),
) -> CompleteTourResponse:
    """Finalize a session and dispatch its attribution event."""
    result = service.complete_session(
        session_id,
        payload=body.final_engagement_data,
        user_info=body.user_info,
        reason=body.completion_reason,
        tracking=body.to_tracking(),
    )
    if not result.success or result.session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tour session not found")

    session = result.session
    return CompleteTourResponse(
        session_id=session.session_id,
        engagement_score=session.engagement_score,
        lead_quality_score=session.lead_quality_score,
        completion_reason=session.completion_reason,
        duration_seconds=session.total_duration_seconds,
        rooms_visited=len(session.rooms_visited),
        actions_taken=len(session.actions_taken),
        milestones=[m.to_dict() for m in result.milestones],
        event_sent=session.event_sent,
        event_id=session.event_id,
        already_finalized=result.already_finalized,
    )


@router.post("/{session_id}/milestone", response_model=MilestoneResponse)
def record_milestone(
    session_id: str,
    body: MilestoneRequest,
    service: TourCompletionService = Depends(get_completion_service),
) -> MilestoneResponse:
    """Value a milestone reported during the tour."""
    result = service.record_milestone(
        session_id,
        body.milestone_type,
        body.milestone_data,
        body.user_info,
        body.property_id,
        tracking=body.to_tracking(),
    )
    if not result.success or result.milestone is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Invalid milestone type '{body.milestone_type}'. "
                f"Must be one of: {', '.join(MILESTONE_KINDS)}"
            ),
        )

    return MilestoneResponse(
        milestone_type=body.milestone_type,
        value_score=result.milestone.value_score,
        event_sent=result.event_sent,
        should_track=result.should_track,
        follow_up_priority=result.follow_up_priority,
        next_milestone_targets=result.next_milestone_targets,
    )
