"""
Tests for the tour session and tour analytics API routes.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tour_engine.adapters.attribution_stub import AttributionStubAdapter
from tour_engine.adapters.memory_repo import InMemoryTourSessionRepo
from tour_engine.api.deps import get_completion_service, get_tour_repo
from tour_engine.api.main import app as main_app
from tour_engine.api.routes import tour_analytics, tours
from tour_engine.components.completion import TourCompletionService

# --- Test Setup ---


@pytest.fixture
def repo() -> InMemoryTourSessionRepo:
    return InMemoryTourSessionRepo()


@pytest.fixture
def stub() -> AttributionStubAdapter:
    return AttributionStubAdapter()


@pytest.fixture
def client(repo, stub, clock) -> TestClient:
    service = TourCompletionService(repo=repo, attribution=stub, clock=clock)
    app = FastAPI()
    app.include_router(tour_analytics.router, prefix="/api/tours/analytics")
    app.include_router(tours.router, prefix="/api/tours")
    app.dependency_overrides[get_completion_service] = lambda: service
    app.dependency_overrides[get_tour_repo] = lambda: repo
    return TestClient(app)


def start(client: TestClient, session_id: str = "s-1", **extra) -> dict:
    body = {"session_id": session_id, "property_id": "prop-1", "tour_type": "virtual_3d"}
    body.update(extra)
    response = client.post("/api/tours/start", json=body)
    assert response.status_code == 200, response.text
    return response.json()


# --- Start ---


class TestStartTour:
    """POST /api/tours/start"""

    def test_start_creates_session(self, client, repo, clock) -> None:
        data = start(client, fbclid="fb.1.click", utm_campaign="spring")

        assert data["success"] is True
        assert data["session_id"] == "s-1"
        stored = repo.get("s-1")
        assert stored is not None
        assert stored.started_at == clock.now_utc()
        assert stored.tracking.fbclid == "fb.1.click"
        assert stored.tracking.utm_campaign == "spring"

    def test_contact_at_start_is_flagged_not_stored(self, client, repo) -> None:
        start(client, user_info={"email": "visitor@example.com"})

        stored = repo.get("s-1")
        assert stored.contact_provided is True
        assert "visitor@example.com" not in stored.model_dump_json()

    def test_duplicate_is_conflict(self, client) -> None:
        start(client)
        response = client.post(
            "/api/tours/start",
            json={"session_id": "s-1", "property_id": "prop-9", "tour_type": "video"},
        )
        assert response.status_code == 409

    def test_invalid_tour_type_is_422(self, client) -> None:
        response = client.post(
            "/api/tours/start",
            json={"session_id": "s-1", "property_id": "prop-1", "tour_type": "hologram"},
        )
        assert response.status_code == 422


# --- Status ---


class TestTourStatus:
    """GET /api/tours/{id}/complete"""

    def test_unknown_is_404(self, client) -> None:
        assert client.get("/api/tours/nope/complete").status_code == 404

    def test_status_shape(self, client) -> None:
        start(client)
        response = client.get("/api/tours/s-1/complete")

        assert response.status_code == 200
        data = response.json()
        assert data["session"]["session_id"] == "s-1"
        assert data["engagement_level"] == "low"
        assert data["milestones"] == []
        assert data["recommendations"]["next_action"] == "add_to_nurture"


# --- Complete ---


class TestCompleteTour:
    """POST /api/tours/{id}/complete"""

    def test_unknown_is_404(self, client) -> None:
        response = client.post("/api/tours/nope/complete", json={})
        assert response.status_code == 404

    def test_complete_with_payload(self, client, stub, clock) -> None:
        start(client)
        t0 = clock.now_utc()
        clock.advance(200)
        actions = [
            {"type": "room_enter", "target": "kitchen", "room": "kitchen", "timestamp": t0.isoformat()},
            {
                "type": "click",
                "room": "kitchen",
                "timestamp": (t0 + timedelta(seconds=61)).isoformat(),
            },
            {"type": "click", "timestamp": (t0 + timedelta(seconds=70)).isoformat()},
        ]

        response = client.post(
            "/api/tours/s-1/complete",
            json={
                "final_engagement_data": {"total_duration": 200, "actions_taken": actions},
                "user_info": {"email": "visitor@example.com"},
                "completion_reason": "user_exit",
            },
        )

        assert response.status_code == 200, response.text
        data = response.json()
        # 200s -> 33 duration points, 1 room -> 10, 3 actions -> 6
        assert data["engagement_score"] == 49
        # 49 // 2 + contact bonus
        assert data["lead_quality_score"] == 34
        assert data["completion_reason"] == "user_exit"
        assert data["duration_seconds"] == 200
        assert data["actions_taken"] == 3
        assert [m["type"] for m in data["milestones"]] == ["room_focus"]
        assert data["milestones"][0]["value_score"] == 13
        assert data["event_sent"] is True
        assert data["event_id"].startswith("tour_s-1_")
        assert stub.events[0].event_name == "ViewContent"

    def test_contact_given_at_start_counts_toward_lead_quality(self, client, clock) -> None:
        start(client, "s-1", user_info={"phone": "01012345678"})
        start(client, "s-2")
        clock.advance(30)

        with_contact = client.post("/api/tours/s-1/complete", json={}).json()
        without_contact = client.post("/api/tours/s-2/complete", json={}).json()

        assert with_contact["engagement_score"] == without_contact["engagement_score"]
        assert with_contact["lead_quality_score"] == without_contact["lead_quality_score"] + 10

    def test_invalid_reason_is_422(self, client) -> None:
        start(client)
        response = client.post("/api/tours/s-1/complete", json={"completion_reason": "bored"})
        assert response.status_code == 422

    def test_second_completion_reports_existing_event(self, client, stub, clock) -> None:
        start(client)
        clock.advance(30)
        first = client.post("/api/tours/s-1/complete", json={}).json()
        second = client.post("/api/tours/s-1/complete", json={}).json()

        assert second["already_finalized"] is True
        assert second["event_id"] == first["event_id"]
        assert len(stub.events) == 1


# --- Milestone ---


class TestRecordMilestone:
    """POST /api/tours/{id}/milestone"""

    def test_unknown_type_is_400(self, client) -> None:
        response = client.post(
            "/api/tours/s-1/milestone",
            json={"milestone_type": "teleport", "property_id": "prop-1"},
        )
        assert response.status_code == 400
        assert "teleport" in response.json()["detail"]

    def test_share_milestone(self, client, stub) -> None:
        response = client.post(
            "/api/tours/s-1/milestone",
            json={
                "milestone_type": "share_action",
                "milestone_data": {"platform": "whatsapp"},
                "property_id": "prop-1",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["value_score"] == 25
        assert data["should_track"] is True
        assert data["event_sent"] is True
        assert data["follow_up_priority"] == "medium"
        assert stub.events[0].event_name == "Share"


# --- Analytics ---


class TestTourAnalytics:
    """GET /api/tours/analytics"""

    def test_empty(self, client) -> None:
        response = client.get("/api/tours/analytics")

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["total_sessions"] == 0
        assert data["summary"]["completion_rate"] == 0.0
        assert data["recent_sessions"] == []
        assert data["engagement_insights"]["engagement_patterns"] is None
        assert data["engagement_insights"]["optimization_recommendations"] == []

    def test_summary_after_completion(self, client, clock) -> None:
        start(client, "s-1")
        start(client, "s-2", property_id="prop-2")
        clock.advance(30)
        client.post("/api/tours/s-1/complete", json={"completion_reason": "completed"})

        data = client.get("/api/tours/analytics", params={"property_id": "prop-1"}).json()

        assert data["summary"]["total_sessions"] == 1
        assert data["summary"]["completed_sessions"] == 1
        assert data["summary"]["events_sent"] == 1
        assert data["summary"]["event_rate"] == 1.0
        assert [s["session_id"] for s in data["recent_sessions"]] == ["s-1"]
        recs = data["engagement_insights"]["optimization_recommendations"]
        assert [r["type"] for r in recs] == ["engagement_duration", "tour_type_optimization"]

    def test_without_insights(self, client) -> None:
        data = client.get("/api/tours/analytics", params={"include_insights": "false"}).json()
        assert data["engagement_insights"] is None


# --- Health ---


def test_health_check() -> None:
    response = TestClient(main_app).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "api"}
