"""
Meta Conversions API adapter.

Implements AttributionPort by posting one server event per call to the
Graph API events endpoint. Delivery failures come back as
SendEventResult(success=False); nothing is raised to the caller.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from tour_engine.core.ports.attribution import AttributionEvent, SendEventResult

logger = logging.getLogger(__name__)

GRAPH_API_VERSION = "v18.0"
DEFAULT_TIMEOUT_SECONDS = 10.0
PARTNER_AGENT = "tour-engagement-engine"


class MetaConversionsAdapter:
    """
    Attribution adapter for the Meta Conversions API.

    Args:
        pixel_id: Pixel (dataset) id the events belong to
        access_token: Conversions API access token
        test_event_code: Routes events to the Events Manager test view when set
        event_source_url: Page the tour is served from; left out of events when unset
        timeout: Request timeout in seconds
        client: Optional preconfigured httpx.Client (tests use a MockTransport)
    """

    def __init__(
        self,
        pixel_id: str,
        access_token: str,
        test_event_code: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        event_source_url: str | None = None,
        api_version: str = GRAPH_API_VERSION,
        partner_agent: str = PARTNER_AGENT,
        client: httpx.Client | None = None,
    ) -> None:
        self.pixel_id = pixel_id
        self.access_token = access_token
        self.test_event_code = test_event_code
        self.event_source_url = event_source_url
        self.api_version = api_version
        self.partner_agent = partner_agent
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout, connect=5.0))

        if not self.is_configured:
            logger.warning("Meta Conversions API: pixel id or access token missing")

    @property
    def is_configured(self) -> bool:
        return bool(self.pixel_id and self.access_token)

    @property
    def api_url(self) -> str:
        return f"https://graph.facebook.com/{self.api_version}/{self.pixel_id}/events"

    def build_request(self, event: AttributionEvent) -> dict[str, Any]:
        """Request body for one event."""
        user_data: dict[str, Any] = {}
        if event.contact_hash:
            user_data[event.contact_kind] = [event.contact_hash]
        if event.click_id:
            user_data["fbc"] = event.click_id
        if event.browser_id:
            user_data["fbp"] = event.browser_id

        server_event: dict[str, Any] = {
            "event_name": event.event_name,
            "event_time": int(time.time()),
            "action_source": "website",
            "user_data": user_data,
            "custom_data": dict(event.custom_data),
        }
        if self.event_source_url:
            server_event["event_source_url"] = self.event_source_url
        if event.event_id:
            server_event["event_id"] = event.event_id

        body: dict[str, Any] = {"data": [server_event], "partner_agent": self.partner_agent}
        if self.test_event_code:
            body["test_event_code"] = self.test_event_code
        return body

    def send_event(self, event: AttributionEvent) -> SendEventResult:
        if not self.is_configured:
            return SendEventResult(success=False, error="not_configured")

        try:
            response = self._client.post(
                self.api_url,
                json=self.build_request(event),
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.TimeoutException:
            logger.error("Meta Conversions API request timed out (%s)", event.event_name)
            return SendEventResult(success=False, error="timeout")
        except httpx.HTTPError as e:
            logger.error("Meta Conversions API transport error: %s", e)
            return SendEventResult(success=False, error=str(e) or "transport_error")

        if response.is_success:
            logger.debug("Meta event sent: %s id=%s", event.event_name, event.event_id)
            return SendEventResult(success=True)

        message = _error_message(response)
        logger.error(
            "Meta Conversions API error %s for %s: %s",
            response.status_code,
            event.event_name,
            message,
        )
        return SendEventResult(success=False, error=message)

    def close(self) -> None:
        self._client.close()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return "API Error"
