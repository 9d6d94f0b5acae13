"""
Unit tests for Completion component.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from tour_engine.adapters.attribution_stub import AttributionStubAdapter
from tour_engine.adapters.memory_repo import InMemoryTourSessionRepo
from tour_engine.components.attribution import hash_email
from tour_engine.core.entities import TourAction, TourSession, TrackingParams, UserInfo

from ..component import (
    TourCompletionService,
    classify_engagement,
    finalize_session,
    recommend,
)
from ..models import EngagementPayload

T0 = datetime(2026, 3, 1, 10, 0, 0, tzinfo=timezone.utc)


# --- Test Fixtures ---


class FakeClock:
    """Settable clock."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def now_utc(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def action(seconds: float, kind: str = "click", room: str = "unknown", target: str | None = None):
    return TourAction(type=kind, room=room, target=target, timestamp=at(seconds))


def scenario_payload() -> EngagementPayload:
    """master_bedroom 90s with 6 quick clicks, then kitchen."""
    actions = [action(0, "room_enter", room="master_bedroom", target="master_bedroom")]
    actions += [action(s, room="master_bedroom") for s in (30, 34, 38, 42, 46, 50)]
    actions += [
        action(90, "room_enter", room="kitchen", target="kitchen"),
        action(120, room="kitchen"),
    ]
    return EngagementPayload(total_duration=130, actions_taken=actions)


def make_service(**kwargs):
    repo = kwargs.pop("repo", None) or InMemoryTourSessionRepo()
    attribution = kwargs.pop("attribution", None) or AttributionStubAdapter()
    clock = kwargs.pop("clock", None) or FakeClock()
    service = TourCompletionService(repo=repo, attribution=attribution, clock=clock, **kwargs)
    return service, repo, attribution, clock


def stored_session(**overrides) -> TourSession:
    data = {
        "session_id": "s-1",
        "property_id": "prop-1",
        "tour_type": "virtual_3d",
        "started_at": T0,
    }
    data.update(overrides)
    return TourSession(**data)


# --- Pure Functions ---


class TestRecommend:
    """Follow-up recommendations."""

    def test_high_engagement(self):
        rec = recommend(stored_session(engagement_score=65, lead_quality_score=40))
        assert rec.should_track_lead is True
        assert rec.follow_up_priority == "high"
        assert rec.next_action == "contact_immediately"

    def test_middle_band(self):
        rec = recommend(stored_session(engagement_score=35, lead_quality_score=15))
        assert rec.should_track_lead is False
        assert rec.follow_up_priority == "medium"
        assert rec.next_action == "schedule_follow_up"

    def test_low_band(self):
        rec = recommend(stored_session(engagement_score=10, lead_quality_score=5))
        assert rec.follow_up_priority == "low"
        assert rec.next_action == "add_to_nurture"

    def test_classify_engagement(self):
        assert classify_engagement(50) == "high"
        assert classify_engagement(25) == "medium"
        assert classify_engagement(24) == "low"


class TestFinalizeSession:
    """Applying completion fields."""

    def test_duration_falls_back_to_elapsed(self):
        finalized = finalize_session(stored_session(), None, "timeout", at(75))
        assert finalized.total_duration_seconds == 75
        assert finalized.ended_at == at(75)
        assert finalized.completed is False
        assert finalized.completion_reason == "timeout"

    def test_completed_reason_sets_flag(self):
        finalized = finalize_session(stored_session(), None, "completed", at(10))
        assert finalized.completed is True

    def test_payload_wins_and_stored_actions_kept_otherwise(self):
        stored = stored_session(actions_taken=[action(0, room="kitchen")])

        kept = finalize_session(stored, EngagementPayload(total_duration=40), "user_exit", at(50))
        replaced = finalize_session(
            stored, EngagementPayload(actions_taken=[]), "user_exit", at(50)
        )

        assert kept.total_duration_seconds == 40
        assert len(kept.actions_taken) == 1
        assert replaced.actions_taken == []

    def test_new_tracking_values_win(self):
        stored = stored_session(tracking=TrackingParams(fbclid="old", utm_source="ads"))
        finalized = finalize_session(
            stored, None, "user_exit", at(5), TrackingParams(fbclid="new")
        )
        assert finalized.tracking.fbclid == "new"
        assert finalized.tracking.utm_source == "ads"


# --- Start / Verify ---


class TestStartSession:
    """Session creation."""

    def test_start_uses_server_clock(self):
        service, repo, _, clock = make_service()
        clock.advance(5)

        result = service.start_session("s-1", "prop-1", "realsee")

        assert result.success is True
        stored = repo.get("s-1")
        assert stored is not None
        assert stored.started_at == at(5)
        assert stored.tour_type == "realsee"

    def test_duplicate_rejected_not_overwritten(self):
        service, repo, _, _ = make_service()
        service.start_session("s-1", "prop-1", "virtual_3d")

        result = service.start_session("s-1", "prop-2", "video")

        assert result.success is False
        assert result.error == "session_exists"
        stored = repo.get("s-1")
        assert stored is not None
        assert stored.property_id == "prop-1"


class TestVerifySession:
    """Status lookup."""

    def test_unknown(self):
        service, *_ = make_service()
        result = service.verify_session("missing")
        assert result.success is False
        assert result.error == "not_found"

    def test_known_includes_recommendations(self):
        service, *_ = make_service(repo=InMemoryTourSessionRepo([stored_session()]))
        result = service.verify_session("s-1")
        assert result.success is True
        assert result.status is not None
        assert result.status.session.session_id == "s-1"
        assert result.status.recommendations is not None


# --- Complete ---


class TestCompleteSession:
    """Finalize, score, detect, dispatch."""

    def test_unknown_session(self):
        service, *_ = make_service()
        result = service.complete_session("missing")
        assert result.success is False
        assert result.error == "not_found"

    def test_scenario_completion(self):
        service, repo, attribution, clock = make_service()
        service.start_session("s-1", "prop-1", "virtual_3d")
        clock.advance(130)

        result = service.complete_session(
            "s-1",
            scenario_payload(),
            user_info=UserInfo(email="Visitor@Example.com"),
            reason="completed",
        )

        assert result.success is True
        assert result.session is not None
        assert result.session.engagement_score == 69
        assert result.session.lead_quality_score == 49
        assert [m.kind for m in result.milestones] == [
            "room_focus",
            "interaction_burst",
            "completion",
        ]
        assert result.dispatch is not None
        assert result.dispatch.tier == "high"
        assert result.dispatch.total_score == 147
        assert result.event_sent is True
        assert result.milestone_events_sent == 2

        assert [e.event_name for e in attribution.events] == [
            "AddToCart",
            "ViewContent",
            "AddToCart",
        ]
        main = attribution.events[0]
        assert main.contact_hash == hash_email("visitor@example.com")
        assert main.event_id == result.dispatch.event_id

        stored = repo.get("s-1")
        assert stored is not None
        assert stored.event_sent is True
        assert stored.event_id == result.dispatch.event_id

    def test_second_completion_does_not_resend(self):
        service, repo, attribution, clock = make_service()
        service.start_session("s-1", "prop-1", "virtual_3d")
        clock.advance(60)
        first = service.complete_session("s-1", EngagementPayload(total_duration=60))
        events_after_first = len(attribution.events)
        clock.advance(60)

        second = service.complete_session("s-1", EngagementPayload(total_duration=999))

        assert second.success is True
        assert second.already_finalized is True
        assert second.dispatch is not None
        assert second.dispatch.skipped is True
        assert first.dispatch is not None
        assert second.dispatch.event_id == first.dispatch.event_id
        assert len(attribution.events) == events_after_first
        stored = repo.get("s-1")
        assert stored is not None
        assert stored.total_duration_seconds == 60

    def test_dispatch_failure_does_not_fail_completion(self):
        attribution = AttributionStubAdapter(fail_with="Invalid OAuth access token")
        service, repo, _, clock = make_service(attribution=attribution)
        service.start_session("s-1", "prop-1", "video")
        clock.advance(30)

        result = service.complete_session("s-1", reason="completed")

        assert result.success is True
        assert result.dispatch is not None
        assert result.dispatch.success is False
        assert result.event_sent is False
        assert result.milestone_events_sent == 0
        stored = repo.get("s-1")
        assert stored is not None
        assert stored.is_finalized is True
        assert stored.event_sent is False
        # Only the main event was attempted
        assert len(attribution.events) == 1

    def test_retry_after_failed_dispatch(self):
        attribution = AttributionStubAdapter(fail_with="boom")
        service, repo, _, clock = make_service(attribution=attribution)
        service.start_session("s-1", "prop-1", "video")
        clock.advance(30)
        service.complete_session("s-1")

        attribution.fail_with = None
        report = service.retry_pending_dispatches()

        assert report.attempted == 1
        assert report.sent == 1
        assert report.failed == 0
        stored = repo.get("s-1")
        assert stored is not None
        assert stored.event_sent is True
        assert service.retry_pending_dispatches().attempted == 0

    def test_retry_counts_failures(self):
        attribution = AttributionStubAdapter(fail_with="boom")
        service, _, _, clock = make_service(attribution=attribution)
        for sid in ("s-1", "s-2"):
            service.start_session(sid, "prop-1", "video")
        clock.advance(10)
        service.complete_session("s-1")

        report = service.retry_pending_dispatches()

        assert report.attempted == 1
        assert report.failed == 1
        assert report.details[0]["session_id"] == "s-1"


# --- Record Milestone ---


class TestRecordMilestone:
    """Client-reported milestones."""

    def test_invalid_kind(self):
        service, _, attribution, _ = make_service()
        result = service.record_milestone("s-1", "teleport", {}, None, "prop-1")
        assert result.success is False
        assert result.error == "invalid_milestone_type"
        assert attribution.events == []

    def test_significant_milestone_sent(self):
        service, _, attribution, _ = make_service()

        result = service.record_milestone(
            "s-1",
            "room_focus",
            {"room_name": "Kitchen", "time_spent": 90},
            UserInfo(phone="01012345678"),
            "prop-1",
        )

        assert result.success is True
        assert result.milestone is not None
        assert result.milestone.value_score == 40
        assert result.should_track is True
        assert result.event_sent is True
        assert result.follow_up_priority == "high"
        assert result.next_milestone_targets == ["interaction_burst", "share_action", "completion"]
        (event,) = attribution.events
        assert event.event_name == "Search"
        assert event.contact_kind == "ph"

    def test_small_milestone_not_sent(self):
        service, _, attribution, _ = make_service()

        result = service.record_milestone(
            "s-1", "interaction_burst", {"interaction_count": 3}, None, "prop-1"
        )

        assert result.success is True
        assert result.milestone is not None
        assert result.milestone.value_score == 9
        assert result.should_track is False
        assert result.event_sent is False
        assert result.follow_up_priority == "low"
        assert attribution.events == []

    def test_send_failure_reported_not_raised(self):
        service, *_ = make_service(attribution=AttributionStubAdapter(fail_with="down"))
        result = service.record_milestone("s-1", "return_visit", {}, None, "prop-1")
        assert result.success is True
        assert result.should_track is True
        assert result.event_sent is False
