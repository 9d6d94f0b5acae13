"""
HTTP client for the tour service.

Implements SessionPersistencePort against the /api/tours routes so the
Session State Machine can run in a separate process from the server.

Failure mapping:
- timeout -> CollaboratorTimeoutError
- connection failure or 5xx -> CollaboratorUnavailableError
- 4xx on create/complete/milestone -> result with success=False
- 404 on verification -> False
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from tour_engine.core.entities import TrackingParams, UserInfo
from tour_engine.core.ports.persistence import (
    CollaboratorTimeoutError,
    CollaboratorUnavailableError,
    CompleteResult,
    CreateResult,
    MilestoneRecordResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class TourApiClient:
    """SessionPersistencePort over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
        )

    # --- Transport ---

    def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise CollaboratorTimeoutError(operation, str(e) or "timed out") from e
        except httpx.HTTPError as e:
            raise CollaboratorUnavailableError(operation, str(e) or "transport error") from e

        if response.status_code >= 500:
            raise CollaboratorUnavailableError(operation, f"HTTP {response.status_code}")
        return response

    # --- Port methods ---

    def create(
        self,
        session_id: str,
        property_id: str,
        tour_kind: str,
        user_info: UserInfo | None = None,
        tracking: TrackingParams | None = None,
    ) -> CreateResult:
        body: dict[str, Any] = {
            "session_id": session_id,
            "property_id": property_id,
            "tour_type": tour_kind,
            **_tracking_fields(tracking),
        }
        if _user_info(user_info):
            body["user_info"] = _user_info(user_info)
        response = self._request("create", "POST", "/api/tours/start", json=body)
        if response.is_success:
            return CreateResult(success=True)
        return CreateResult(success=False, error=_detail(response))

    def verify_exists(self, session_id: str) -> bool:
        response = self._request("verify", "GET", f"/api/tours/{session_id}/complete")
        if response.status_code == 404:
            logger.debug("Session %s not found during verification", session_id)
            return False
        return response.is_success

    def complete(
        self,
        session_id: str,
        engagement_payload: dict[str, Any] | None,
        user_info: UserInfo | None,
        completion_reason: str,
        tracking: TrackingParams | None = None,
    ) -> CompleteResult:
        body: dict[str, Any] = {
            "final_engagement_data": engagement_payload,
            "user_info": _user_info(user_info),
            "completion_reason": completion_reason,
            **_tracking_fields(tracking),
        }
        response = self._request("complete", "POST", f"/api/tours/{session_id}/complete", json=body)
        if not response.is_success:
            return CompleteResult(success=False, error=_detail(response))

        data = response.json()
        return CompleteResult(
            success=True,
            engagement_score=int(data.get("engagement_score", 0)),
            lead_quality_score=int(data.get("lead_quality_score", 0)),
            milestones=list(data.get("milestones", [])),
            event_sent=bool(data.get("event_sent", False)),
        )

    def record_milestone(
        self,
        session_id: str,
        milestone_type: str,
        milestone_data: dict[str, Any],
        user_info: UserInfo | None,
        property_id: str,
        tracking: TrackingParams | None = None,
    ) -> MilestoneRecordResult:
        body: dict[str, Any] = {
            "milestone_type": milestone_type,
            "milestone_data": milestone_data,
            "user_info": _user_info(user_info),
            "property_id": property_id,
            **_tracking_fields(tracking),
        }
        response = self._request(
            "record_milestone", "POST", f"/api/tours/{session_id}/milestone", json=body
        )
        if not response.is_success:
            return MilestoneRecordResult(success=False, error=_detail(response))
        data = response.json()
        return MilestoneRecordResult(success=True, value_score=int(data.get("value_score", 0)))

    def close(self) -> None:
        self._client.close()


def _tracking_fields(tracking: TrackingParams | None) -> dict[str, Any]:
    if tracking is None:
        return {}
    return tracking.model_dump(exclude_none=True)


def _user_info(user_info: UserInfo | None) -> dict[str, Any] | None:
    if user_info is None or user_info.is_empty():
        return None
    return user_info.model_dump(exclude_none=True)


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return f"HTTP {response.status_code}"
