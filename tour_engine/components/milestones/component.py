"""
Milestones component - Behavioral milestone detection.

Derives scored milestones from a session's flat action log. Pure and
stateless: safe to call concurrently for different sessions.

Algorithm:
1. Room time is reconstructed from consecutive action timestamps
2. Rooms with more than the threshold (60s) of dwell time yield room_focus
3. A sliding 30s window yields interaction_burst for every
   non-overlapping run of 5+ actions
4. A completed session yields one completion milestone

Invariants:
- Output depends only on the session data (no wall clock, no randomness)
- Milestone order: room_focus (first-seen room order), bursts, completion
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from tour_engine.core.entities import ROOM_ENTER, TourAction, TourSession

from .models import (
    DEFAULT_CONFIG,
    MILESTONE_KINDS,
    BurstWindow,
    InteractionBurstPayload,
    Milestone,
    MilestoneConfig,
    RoomFocusPayload,
    SharePayload,
)

MIN_VALUE_SCORE = 1
MAX_VALUE_SCORE = 100


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 rounding up."""
    return int(math.floor(value + 0.5))


def clamp_value_score(value: float) -> int:
    """Clamp a raw value into the 1-100 milestone range."""
    return max(MIN_VALUE_SCORE, min(MAX_VALUE_SCORE, round_half_up(value)))


def is_valid_kind(kind: str) -> bool:
    return kind in MILESTONE_KINDS


# --- Room time reconstruction ---


def _room_of(action: TourAction) -> str | None:
    if action.has_room_hint:
        return action.room
    if action.type == ROOM_ENTER and action.target:
        return action.target
    return None


def _accumulate_room_time(
    actions: Sequence[TourAction],
) -> dict[str, tuple[int, datetime]]:
    """Room name -> (seconds, first timestamp seen), in first-seen order."""
    totals: dict[str, tuple[int, datetime]] = {}

    for index, action in enumerate(actions[:-1]):
        room = _room_of(action)
        if room is None:
            continue

        next_action = actions[index + 1]
        elapsed = int((next_action.timestamp - action.timestamp).total_seconds())
        if elapsed <= 0:
            continue

        seconds, first_seen = totals.get(room, (0, action.timestamp))
        totals[room] = (seconds + elapsed, first_seen)

    return totals


def reconstruct_room_time(actions: Sequence[TourAction]) -> dict[str, int]:
    """
    Reconstruct seconds spent per room from the flat action log.

    Each action carrying a room hint is credited with the interval up to
    the following action. Works without RoomVisit brackets so partial or
    legacy logs still produce dwell times.

    Args:
        actions: Actions in log order

    Returns:
        Room name -> whole seconds, in first-seen order
    """
    return {room: seconds for room, (seconds, _) in _accumulate_room_time(actions).items()}


def room_multiplier(room_name: str, config: MilestoneConfig = DEFAULT_CONFIG) -> float:
    """Look up the room-type multiplier by case-insensitive substring match."""
    lowered = room_name.lower()
    for match, multiplier in config.room_multipliers:
        if match in lowered:
            return multiplier
    return 1.0


def room_focus_value(
    room_name: str,
    seconds: int,
    config: MilestoneConfig = DEFAULT_CONFIG,
) -> int:
    """
    Value a room focus: min(time/10, cap) scaled by the room multiplier.

    Example: kitchen at 61s -> 6.1 * 1.8 = 10.98 -> 11
    """
    base = min(seconds / 10, config.room_focus_time_cap)
    return clamp_value_score(base * room_multiplier(room_name, config))


# --- Interaction bursts ---


def detect_interaction_bursts(
    actions: Sequence[TourAction],
    config: MilestoneConfig = DEFAULT_CONFIG,
) -> list[BurstWindow]:
    """
    Find non-overlapping bursts of activity.

    A window opens at an action and spans burst_window_seconds (inclusive).
    If it holds burst_min_actions or more, it is a burst and the scan
    resumes after the last counted action.
    """
    bursts: list[BurstWindow] = []
    index = 0
    total = len(actions)

    while index < total:
        started_at = actions[index].timestamp
        count = 1
        for follower in actions[index + 1 :]:
            if (follower.timestamp - started_at).total_seconds() > config.burst_window_seconds:
                break
            count += 1

        if count >= config.burst_min_actions:
            bursts.append(BurstWindow(count=count, started_at=started_at))
            index += count
        else:
            index += 1

    return bursts


def burst_value(count: int, config: MilestoneConfig = DEFAULT_CONFIG) -> int:
    return clamp_value_score(min(count * config.burst_points_per_action, config.burst_value_cap))


# --- Detection entry point ---


def _completion_timestamp(session: TourSession) -> datetime:
    if session.ended_at is not None:
        return session.ended_at
    if session.actions_taken:
        return session.actions_taken[-1].timestamp
    return session.started_at


def detect(
    session: TourSession,
    config: MilestoneConfig | None = None,
) -> list[Milestone]:
    """
    Detect milestones for a session.

    Args:
        session: Session with its ordered action log
        config: Optional thresholds (defaults apply otherwise)

    Returns:
        Milestones: room_focus per qualifying room, one interaction_burst
        per burst, then completion if the session completed
    """
    config = config or DEFAULT_CONFIG
    actions = session.actions_taken
    milestones: list[Milestone] = []

    for room, (seconds, first_seen) in _accumulate_room_time(actions).items():
        if seconds > config.room_focus_threshold_seconds:
            milestones.append(
                Milestone(
                    kind="room_focus",
                    value_score=room_focus_value(room, seconds, config),
                    timestamp=first_seen,
                    payload=RoomFocusPayload(room_name=room, dwell_seconds=seconds),
                )
            )

    for burst in detect_interaction_bursts(actions, config):
        milestones.append(
            Milestone(
                kind="interaction_burst",
                value_score=burst_value(burst.count, config),
                timestamp=burst.started_at,
                payload=InteractionBurstPayload(interaction_count=burst.count),
            )
        )

    if session.completed:
        milestones.append(
            Milestone(
                kind="completion",
                value_score=clamp_value_score(config.completion_value),
                timestamp=_completion_timestamp(session),
            )
        )

    return milestones


# --- Client-reported milestones ---

REPORTED_ROOM_BASES: tuple[tuple[tuple[str, ...], int], ...] = (
    (("bedroom", "master"), 25),
    (("kitchen",), 20),
    (("living", "salon"), 15),
    (("balcony", "terrace"), 18),
)
REPORTED_ROOM_DEFAULT_BASE = 10
REPORTED_COMPLETION_VALUE = 35
REPORTED_DEFAULT_VALUE = 5


def reported_value(
    kind: str,
    data: dict[str, Any] | None,
    config: MilestoneConfig = DEFAULT_CONFIG,
) -> int:
    """
    Value a milestone reported by the client while the tour is running.

    These are provisional; detect() recomputes authoritatively at completion.
    """
    data = data or {}

    if kind == "room_focus":
        room_name = str(data.get("room_name") or "").lower()
        base = REPORTED_ROOM_DEFAULT_BASE
        for needles, room_base in REPORTED_ROOM_BASES:
            if any(needle in room_name for needle in needles):
                base = room_base
                break
        time_multiplier = min(float(data.get("time_spent") or 0) / 30, 2.0)
        return clamp_value_score(base * time_multiplier)

    if kind == "interaction_burst":
        count = int(data.get("interaction_count") or 0)
        return clamp_value_score(min(count * 3, 30))

    if kind == "completion":
        return REPORTED_COMPLETION_VALUE

    if kind == "share_action":
        return clamp_value_score(config.share_action_value)

    if kind == "return_visit":
        return clamp_value_score(config.return_visit_value)

    return REPORTED_DEFAULT_VALUE


def build_reported_milestone(
    kind: str,
    data: dict[str, Any] | None,
    timestamp: datetime,
    config: MilestoneConfig = DEFAULT_CONFIG,
) -> Milestone:
    """Build a Milestone from a client report. Raises ValueError on unknown kinds."""
    if not is_valid_kind(kind):
        raise ValueError(
            f"Invalid milestone type '{kind}'. Must be one of: {', '.join(MILESTONE_KINDS)}"
        )

    data = data or {}
    payload: RoomFocusPayload | InteractionBurstPayload | SharePayload | None = None
    if kind == "room_focus":
        payload = RoomFocusPayload(
            room_name=str(data.get("room_name") or ""),
            dwell_seconds=int(data.get("time_spent") or 0),
        )
    elif kind == "interaction_burst":
        payload = InteractionBurstPayload(interaction_count=int(data.get("interaction_count") or 0))
    elif kind == "share_action":
        platform = data.get("platform")
        payload = SharePayload(platform=str(platform) if platform is not None else None)

    return Milestone(
        kind=kind,  # type: ignore[arg-type]
        value_score=reported_value(kind, data, config),
        timestamp=timestamp,
        payload=payload,
    )
