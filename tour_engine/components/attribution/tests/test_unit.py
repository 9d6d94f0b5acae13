"""
Unit tests for Attribution component.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone

from tour_engine.components.milestones import Milestone, RoomFocusPayload
from tour_engine.core.entities import TourSession, TrackingParams, UserInfo
from tour_engine.core.ports import AttributionEvent, SendEventResult

from ..component import (
    build_milestone_event,
    contact_hash,
    dispatch,
    hash_email,
    normalize_phone,
    send_milestone_event,
    send_milestone_events,
)
from ..models import AttributionConfig

T0 = datetime(2026, 3, 1, 10, 0, 0, tzinfo=timezone.utc)


# --- Test Fixtures ---


class FakeTimePort:
    """Fake time port for testing."""

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or T0

    def now_utc(self) -> datetime:
        return self._now


class FakeAttribution:
    """Fake attribution service recording every event."""

    def __init__(self, succeed: bool = True, raise_error: bool = False):
        self.events: list[AttributionEvent] = []
        self.succeed = succeed
        self.raise_error = raise_error

    def send_event(self, event: AttributionEvent) -> SendEventResult:
        self.events.append(event)
        if self.raise_error:
            raise RuntimeError("socket closed")
        if not self.succeed:
            return SendEventResult(success=False, error="Invalid OAuth access token")
        return SendEventResult(success=True)


class FakeSessionRepo:
    """Fake repo implementing the event bookkeeping part of the port."""

    def __init__(self, sessions: list[TourSession] | None = None):
        self.sessions = {s.session_id: s for s in sessions or []}
        self.mark_calls: list[tuple[str, str]] = []

    def get(self, session_id: str) -> TourSession | None:
        return self.sessions.get(session_id)

    def mark_event_sent(self, session_id: str, event_id: str) -> bool:
        self.mark_calls.append((session_id, event_id))
        session = self.sessions[session_id]
        if session.event_sent:
            return False
        self.sessions[session_id] = session.model_copy(
            update={"event_sent": True, "event_id": event_id}
        )
        return True


def make_session(**overrides) -> TourSession:
    data = {
        "session_id": "s-1",
        "property_id": "prop-1",
        "tour_type": "virtual_3d",
        "started_at": T0,
        "ended_at": T0 + timedelta(seconds=200),
        "total_duration_seconds": 200,
    }
    data.update(overrides)
    return TourSession(**data)


def milestone(value: int, kind: str = "room_focus", room: str | None = None) -> Milestone:
    payload = RoomFocusPayload(room_name=room, dwell_seconds=90) if room else None
    return Milestone(kind=kind, value_score=value, timestamp=T0, payload=payload)  # type: ignore[arg-type]


def run_dispatch(session, milestones, attribution, repo, **kwargs):
    return dispatch(
        session,
        milestones,
        attribution=attribution,
        repo=repo,
        clock=FakeTimePort(),
        **kwargs,
    )


# --- Contact Hashing ---


class TestContactHashing:
    """Normalization before hashing."""

    def test_email_trimmed_and_lowercased(self):
        expected = hashlib.sha256(b"visitor@example.com").hexdigest()
        assert hash_email("  Visitor@Example.COM ") == expected

    def test_phone_normalization(self):
        assert normalize_phone("010 1234 5678") == "201012345678"
        assert normalize_phone("+20 101 234 5678") == "201012345678"
        assert normalize_phone("101 234 5678") == "201012345678"
        assert normalize_phone("+44 20 7946 0000") == "442079460000"

    def test_email_wins_over_phone(self):
        result = contact_hash(UserInfo(email="a@b.com", phone="01012345678"))
        assert result is not None
        assert result.kind == "em"
        assert result.value == hash_email("a@b.com")

    def test_phone_only(self):
        result = contact_hash(UserInfo(phone="01012345678"))
        assert result is not None
        assert result.kind == "ph"
        assert result.value == hashlib.sha256(b"201012345678").hexdigest()

    def test_no_contact(self):
        assert contact_hash(None) is None
        assert contact_hash(UserInfo()) is None
        assert contact_hash(UserInfo(email="  ", phone="--")) is None


# --- Dispatch ---


class TestDispatch:
    """Idempotent tier event dispatch."""

    def test_sends_and_records_event(self):
        session = make_session(engagement_score=30, completed=True)
        repo = FakeSessionRepo([session])
        attribution = FakeAttribution()

        result = run_dispatch(session, [milestone(18)], attribution, repo)

        expected_id = f"tour_s-1_{int(T0.timestamp() * 1000)}"
        assert result.success is True
        assert result.skipped is False
        assert result.sent is True
        assert result.event_id == expected_id
        assert result.tier == "high"
        assert result.total_score == 48
        assert repo.sessions["s-1"].event_sent is True
        assert repo.sessions["s-1"].event_id == expected_id

        (event,) = attribution.events
        assert event.event_name == "AddToCart"
        assert event.event_id == expected_id
        assert event.custom_data["value"] == 100
        assert event.custom_data["property_id"] == "prop-1"
        assert event.custom_data["tour_type"] == "virtual_3d"
        assert event.custom_data["duration_seconds"] == 200
        assert event.custom_data["completed"] is True

    def test_already_sent_is_skipped_twice(self):
        session = make_session(event_sent=True, event_id="tour_s-1_1")
        repo = FakeSessionRepo([session])
        attribution = FakeAttribution()

        first = run_dispatch(session, [milestone(50)], attribution, repo)
        second = run_dispatch(session, [milestone(50)], attribution, repo)

        for result in (first, second):
            assert result.success is True
            assert result.skipped is True
            assert result.event_id == "tour_s-1_1"
        assert attribution.events == []
        assert repo.mark_calls == []

    def test_failure_leaves_flag_unset(self):
        session = make_session(engagement_score=20)
        repo = FakeSessionRepo([session])

        result = run_dispatch(session, [], FakeAttribution(succeed=False), repo)

        assert result.success is False
        assert result.error == "Invalid OAuth access token"
        assert result.tier == "low"
        assert repo.sessions["s-1"].event_sent is False
        assert repo.mark_calls == []

    def test_exception_becomes_failure(self):
        session = make_session()
        repo = FakeSessionRepo([session])

        result = run_dispatch(session, [], FakeAttribution(raise_error=True), repo)

        assert result.success is False
        assert result.error is not None
        assert "socket closed" in result.error
        assert repo.sessions["s-1"].event_sent is False

    def test_retry_after_failure_sends(self):
        session = make_session(engagement_score=60)
        repo = FakeSessionRepo([session])

        failed = run_dispatch(session, [], FakeAttribution(succeed=False), repo)
        retried = run_dispatch(repo.sessions["s-1"], [], FakeAttribution(), repo)

        assert failed.success is False
        assert retried.sent is True
        assert retried.event_name == "ViewContent"

    def test_lost_race_keeps_first_event_id(self):
        stale = make_session()
        repo = FakeSessionRepo([stale.model_copy(update={"event_sent": True, "event_id": "tour_s-1_1"})])

        result = run_dispatch(stale, [], FakeAttribution(), repo)

        assert result.success is True
        assert result.event_id == "tour_s-1_1"
        assert repo.sessions["s-1"].event_id == "tour_s-1_1"

    def test_lost_race_with_unreadable_repo_does_not_raise(self):
        class UnreadableRepo(FakeSessionRepo):
            def get(self, session_id):
                raise RuntimeError("database is locked")

        stale = make_session()
        repo = UnreadableRepo([stale.model_copy(update={"event_sent": True, "event_id": "tour_s-1_1"})])

        result = run_dispatch(stale, [], FakeAttribution(), repo)

        assert result.success is True
        assert result.event_id.startswith("tour_s-1_")

    def test_contact_and_tracking_attached(self):
        session = make_session(tracking=TrackingParams(fbclid="click-1", fbp="fb.1.123.456"))
        repo = FakeSessionRepo([session])
        attribution = FakeAttribution()

        run_dispatch(
            session,
            [],
            attribution,
            repo,
            contact=contact_hash(UserInfo(email="a@b.com")),
        )

        (event,) = attribution.events
        assert event.contact_hash == hash_email("a@b.com")
        assert event.contact_kind == "em"
        assert event.click_id == "click-1"
        assert event.browser_id == "fb.1.123.456"

    def test_disabled_is_skipped(self):
        session = make_session()
        attribution = FakeAttribution()

        result = run_dispatch(
            session,
            [],
            attribution,
            FakeSessionRepo([session]),
            config=AttributionConfig(enabled=False),
        )

        assert result.skipped is True
        assert attribution.events == []


# --- Milestone Events ---


class TestMilestoneEvents:
    """Per-milestone events."""

    def test_event_mapping_and_value(self):
        event = build_milestone_event(milestone(30, "completion"), "prop-1")
        assert event is not None
        assert event.event_name == "AddToCart"
        assert event.custom_data["value"] == 60
        assert event.custom_data["milestone_type"] == "completion"

    def test_room_name_included(self):
        event = build_milestone_event(milestone(18, room="kitchen"), "prop-1")
        assert event is not None
        assert event.event_name == "Search"
        assert event.custom_data["room_name"] == "kitchen"

    def test_unknown_kind_not_sent(self):
        config = AttributionConfig(milestone_events={})
        attribution = FakeAttribution()
        result = send_milestone_event(
            milestone(30),
            session_id="s-1",
            property_id="prop-1",
            attribution=attribution,
            config=config,
        )
        assert result.success is False
        assert attribution.events == []

    def test_only_milestones_above_minimum_sent(self):
        attribution = FakeAttribution()
        sent = send_milestone_events(
            make_session(),
            [milestone(18), milestone(30, "interaction_burst"), milestone(30, "completion")],
            attribution=attribution,
        )
        assert sent == 2
        assert [e.event_name for e in attribution.events] == ["ViewContent", "AddToCart"]

    def test_failures_counted_out(self):
        sent = send_milestone_events(
            make_session(),
            [milestone(30, "completion")],
            attribution=FakeAttribution(succeed=False),
        )
        assert sent == 0
