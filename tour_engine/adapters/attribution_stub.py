"""
Attribution stub adapter (dev/tests).

Stub implementation of AttributionPort that records events in memory
instead of calling the ad platform. Used by tests.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from tour_engine.core.ports.attribution import AttributionEvent, SendEventResult

logger = logging.getLogger(__name__)


@dataclass
class AttributionStubAdapter:
    """
    Records every event it is given.

    Set fail_with to make sends fail with that error message.
    """

    fail_with: str | None = None
    events: list[AttributionEvent] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def send_event(self, event: AttributionEvent) -> SendEventResult:
        with self._lock:
            self.events.append(event)

        if self.fail_with is not None:
            logger.debug("AttributionStubAdapter failing %s: %s", event.event_name, self.fail_with)
            return SendEventResult(success=False, error=self.fail_with)

        logger.debug(
            "AttributionStubAdapter.send_event: name=%s id=%s",
            event.event_name,
            event.event_id,
        )
        return SendEventResult(success=True)

    def events_named(self, event_name: str) -> list[AttributionEvent]:
        return [e for e in self.events if e.event_name == event_name]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()
