"""Microsoft Graph calendar adapter — out-of-office events for approved leave.

Endpoints:
  POST   {base}/me/events               (mailbox "me")
  POST   {base}/users/{mailbox}/events  (any other mailbox)
  DELETE {base}/.../events/{event_id}

Full days become all-day events (Graph wants an exclusive end date);
partial days become timed events starting at the configured workday start.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional

import httpx

from leaveflow.common.constants import CALENDAR_EVENT_CATEGORY
from leaveflow.config import settings
from leaveflow.leave.schemas import CalendarEventDetails

logger = logging.getLogger(__name__)

_GRAPH_DATETIME = "%Y-%m-%dT%H:%M:%S"


def build_event(
    details: CalendarEventDetails,
    *,
    timezone_name: str = "UTC",
    workday_start_hour: int = 9,
) -> dict[str, Any]:
    """Graph ``event`` resource for a leave."""
    if details.is_all_day:
        start = datetime.combine(details.start_date, time.min)
        end = datetime.combine(details.end_date + timedelta(days=1), time.min)
    else:
        start = datetime.combine(details.start_date, time(hour=workday_start_hour))
        hours = Decimal(details.partial_day_hours or 0)
        end = start + timedelta(minutes=int(hours * 60))

    event: dict[str, Any] = {
        "subject": details.subject,
        "start": {"dateTime": start.strftime(_GRAPH_DATETIME), "timeZone": timezone_name},
        "end": {"dateTime": end.strftime(_GRAPH_DATETIME), "timeZone": timezone_name},
        "isAllDay": details.is_all_day,
        "showAs": "oof",
        "categories": [CALENDAR_EVENT_CATEGORY],
        "body": {"contentType": "text", "content": details.body},
    }
    if details.attendee_email:
        event["attendees"] = [
            {"emailAddress": {"address": details.attendee_email}, "type": "required"}
        ]
    return event


class GraphCalendarSync:
    """CalendarSync over the Graph REST API using a caller-supplied token."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        mailbox: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self.base_url = (base_url or settings.GRAPH_BASE_URL).rstrip("/")
        self.access_token = access_token if access_token is not None else settings.GRAPH_ACCESS_TOKEN
        self.mailbox = mailbox or settings.GRAPH_MAILBOX
        self.timeout = timeout if timeout is not None else settings.GRAPH_TIMEOUT_SECONDS

    @property
    def events_url(self) -> str:
        owner = "me" if self.mailbox == "me" else f"users/{self.mailbox}"
        return f"{self.base_url}/{owner}/events"

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, headers=self._headers, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=self._headers, **kwargs)

    async def create_event(self, details: CalendarEventDetails) -> str:
        payload = build_event(
            details,
            timezone_name=settings.GRAPH_TIMEZONE,
            workday_start_hour=settings.WORKDAY_START_HOUR,
        )
        resp = await self._request("POST", self.events_url, json=payload)
        resp.raise_for_status()
        event_id = resp.json()["id"]
        logger.info("Calendar event %s created: %s", event_id, details.subject)
        return event_id

    async def delete_event(self, event_id: str) -> None:
        resp = await self._request("DELETE", f"{self.events_url}/{event_id}")
        if resp.status_code == 404:
            logger.info("Calendar event %s already gone", event_id)
            return
        resp.raise_for_status()
        logger.info("Calendar event %s deleted", event_id)
