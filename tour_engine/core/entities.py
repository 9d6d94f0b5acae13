"""
Domain entities for the virtual-tour engagement engine.

- TourSession: one continuous tour viewing, persisted server-side
- RoomVisit: a bracketed stay in one room
- TourAction: an append-only, timestamped user action
- TrackingParams: ad-attribution click/browser ids and UTM fields

Invariants:
- I1: event_sent implies event_id is set; event_id is never reassigned
- I2: ended_at is set if and only if the session reached a terminal state
- I3: at most one RoomVisit per session has left_at = None
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

TourKind = Literal["virtual_3d", "realsee", "video"]
CompletionReason = Literal["completed", "user_exit", "timeout", "component_unmount"]

TOUR_KINDS: tuple[str, ...] = ("virtual_3d", "realsee", "video")
COMPLETION_REASONS: tuple[str, ...] = (
    "completed",
    "user_exit",
    "timeout",
    "component_unmount",
)

UNKNOWN_ROOM = "unknown"

# Action kinds the engine itself emits
ROOM_ENTER = "room_enter"
ROOM_EXIT = "room_exit"
SHARE = "share"


# --- Typed action details ---


class RoomExitDetails(BaseModel):
    """Details carried by a room_exit action."""

    time_spent: int


class ShareDetails(BaseModel):
    """Details carried by a share action."""

    platform: str


ActionDetails = RoomExitDetails | ShareDetails | dict[str, Any]


def parse_action_details(action_type: str, metadata: dict[str, Any] | None) -> ActionDetails | None:
    """
    Resolve an action's metadata bag into its typed shape.

    Kinds with a known payload shape get their model; everything else
    stays an open string-keyed map.
    """
    if metadata is None:
        return None
    if action_type == ROOM_EXIT and "time_spent" in metadata:
        return RoomExitDetails(time_spent=int(metadata["time_spent"]))
    if action_type == SHARE and "platform" in metadata:
        return ShareDetails(platform=str(metadata["platform"]))
    return dict(metadata)


# --- Action log ---


class TourAction(BaseModel):
    """A single timestamped user action inside a tour."""

    type: str
    target: str | None = None
    room: str | None = UNKNOWN_ROOM
    timestamp: datetime
    metadata: dict[str, Any] | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def details(self) -> ActionDetails | None:
        return parse_action_details(self.type, self.metadata)

    @property
    def has_room_hint(self) -> bool:
        return bool(self.room) and self.room != UNKNOWN_ROOM


class RoomVisit(BaseModel):
    """One stay in a room. left_at is None while the visitor is still inside."""

    room_name: str
    entered_at: datetime
    left_at: datetime | None = None
    actions_in_room: list[TourAction] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def time_spent(self) -> int:
        if self.left_at is None:
            return 0
        return int((self.left_at - self.entered_at).total_seconds())

    @property
    def is_open(self) -> bool:
        return self.left_at is None


# --- Attribution parameters ---


class TrackingParams(BaseModel):
    """Ad-attribution identifiers captured with the session."""

    fbclid: str | None = None
    fbp: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None

    def merged_over(self, older: TrackingParams) -> TrackingParams:
        """New values win; stored values are kept where nothing new arrived."""
        return TrackingParams(
            fbclid=self.fbclid or older.fbclid,
            fbp=self.fbp or older.fbp,
            utm_source=self.utm_source or older.utm_source,
            utm_medium=self.utm_medium or older.utm_medium,
            utm_campaign=self.utm_campaign or older.utm_campaign,
        )


class UserInfo(BaseModel):
    """Optional visitor contact details. Never persisted."""

    email: str | None = None
    phone: str | None = None

    def is_empty(self) -> bool:
        return not (self.email or self.phone)


# --- Session record ---


class TourSession(BaseModel):
    """
    Persisted tour session record.

    Created exactly once when tracking starts, finalized exactly once at
    completion. After finalization only the attribution bookkeeping
    (event_sent, event_id) changes.
    """

    session_id: str
    property_id: str
    tour_type: TourKind
    user_id: str | None = None
    contact_provided: bool = False
    started_at: datetime
    ended_at: datetime | None = None
    total_duration_seconds: int = 0
    rooms_visited: list[RoomVisit] = Field(default_factory=list)
    actions_taken: list[TourAction] = Field(default_factory=list)
    completed: bool = False
    completion_reason: CompletionReason | None = None
    engagement_score: int = Field(default=0, ge=0, le=100)
    lead_quality_score: int = Field(default=0, ge=0, le=65)
    event_sent: bool = False
    event_id: str | None = None
    tracking: TrackingParams = Field(default_factory=TrackingParams)

    @property
    def is_finalized(self) -> bool:
        return self.ended_at is not None

    @property
    def distinct_rooms(self) -> set[str]:
        rooms = {visit.room_name for visit in self.rooms_visited}
        rooms.update(a.room for a in self.actions_taken if a.has_room_hint and a.room)
        return rooms
