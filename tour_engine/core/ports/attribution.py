"""
Attribution port interface.

External interface for the ad-platform conversion event endpoint.

Implementations:
- MetaConversionsAdapter: Meta Conversions API over HTTPS
- AttributionStubAdapter: records events in memory (dev/tests)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

# --- Models ---


@dataclass(frozen=True)
class AttributionEvent:
    """
    One conversion event bound for the attribution service.

    Attributes:
        event_name: Platform event name (AddToCart, ViewContent, ...)
        custom_data: Structured payload (value, currency, property id, ...)
        contact_hash: Optional SHA-256 of normalized visitor contact
        contact_kind: Which user_data key the hash belongs to ("em" or "ph")
        click_id: Optional ad click identifier (fbc)
        browser_id: Optional browser identifier (fbp)
        event_id: Optional dedupe identifier understood by the platform
    """

    event_name: str
    custom_data: dict[str, Any] = field(default_factory=dict)
    contact_hash: str | None = None
    contact_kind: str = "em"
    click_id: str | None = None
    browser_id: str | None = None
    event_id: str | None = None


@dataclass(frozen=True)
class SendEventResult:
    """Outcome of a send attempt. Adapters never raise for delivery failures."""

    success: bool
    error: str | None = None


# --- Port Interface ---


class AttributionPort(Protocol):
    """Port for sending conversion events to the attribution service."""

    def send_event(self, event: AttributionEvent) -> SendEventResult:
        """
        Send one conversion event.

        Must be bounded by a timeout. Returns a failure result instead of
        raising on timeouts, transport errors and non-success responses.
        """
        ...
