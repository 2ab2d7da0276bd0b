"""
Google Calendar client adapter for the application.
Talks to the Calendar v3 REST API on behalf of the signed-in user.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import httpx

from config.app_config import ToolConfig
from services.errors import AuthenticationRequiredError, CalendarError
from utils.logging_config import get_logger, log_async_execution_time


CALENDAR_AUTH_ERROR = "Calendar access was rejected; please reconnect your calendar"


def parse_iso(value: str) -> datetime:
    """
    Parse an ISO 8601 timestamp or date into an aware datetime

    Naive values (including all-day dates) are taken as UTC.
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class CalendarEvent:
    """Calendar event normalised from the provider payload"""
    id: str
    title: str
    start: str
    end: str
    description: str = ""
    location: str = ""
    is_all_day: bool = False
    status: str = "confirmed"
    attendees: List[str] = field(default_factory=list)

    @classmethod
    def from_google(cls, payload: Dict[str, Any]) -> 'CalendarEvent':
        start = payload.get("start") or {}
        end = payload.get("end") or {}
        return cls(
            id=payload.get("id", ""),
            title=payload.get("summary") or "Untitled Event",
            start=start.get("dateTime") or start.get("date") or "",
            end=end.get("dateTime") or end.get("date") or "",
            description=payload.get("description") or "",
            location=payload.get("location") or "",
            is_all_day="date" in start and "dateTime" not in start,
            status=payload.get("status") or "confirmed",
            attendees=[a.get("email", "") for a in payload.get("attendees") or []],
        )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """True when [start, end) intersects this event"""
        return start < parse_iso(self.end) and end > parse_iso(self.start)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "description": self.description,
            "location": self.location,
            "isAllDay": self.is_all_day,
            "status": self.status,
            "attendees": self.attendees,
        }


class CalendarProvider(Protocol):
    """Calendar capability used by the calendar tools"""

    async def get_events(self, token: str, start: str, end: str) -> List[CalendarEvent]: ...

    async def create_event(self, token: str, data: Dict[str, Any]) -> CalendarEvent: ...

    async def update_event(self, token: str, event_id: str, data: Dict[str, Any]) -> CalendarEvent: ...

    async def delete_event(self, token: str, event_id: str) -> None: ...


class GoogleCalendarClient:
    """
    Adapter for the Google Calendar v3 REST API.
    Every call carries the user's OAuth access token; no token is stored.
    """

    def __init__(
        self,
        base_url: str = "https://www.googleapis.com/calendar/v3",
        config: Optional[ToolConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.logger = get_logger(__name__)
        self.config = config or ToolConfig()
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.config.http_timeout)

    @property
    def _events_url(self) -> str:
        return f"{self.base_url}/calendars/{self.config.calendar_id}/events"

    async def _request(self, method: str, url: str, token: str, failure: str, **kwargs) -> httpx.Response:
        """
        Send an authorised request and map failures onto the error taxonomy

        Args:
            method: HTTP method
            url: Absolute request URL
            token: OAuth access token
            failure: User-facing message for non-auth failures

        Returns:
            httpx.Response: Successful response

        Raises:
            AuthenticationRequiredError: On 401/403
            CalendarError: On any other HTTP or network failure
        """
        headers = {"Authorization": f"Bearer {token}"}
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            self.logger.error(f"Calendar request failed: {e.__class__.__name__}: {e}")
            raise CalendarError(failure, detail=str(e)) from e

        if response.status_code in (401, 403):
            self.logger.warning(f"Calendar rejected access token ({response.status_code})")
            raise AuthenticationRequiredError(CALENDAR_AUTH_ERROR, detail=response.text)

        if response.is_error:
            self.logger.error(f"Calendar API error {response.status_code}: {response.text[:200]}")
            raise CalendarError(failure, detail=f"HTTP {response.status_code}")

        return response

    async def get_events(self, token: str, start: str, end: str) -> List[CalendarEvent]:
        """
        List single events between two ISO 8601 timestamps, ordered by start time
        """
        params = {
            "timeMin": parse_iso(start).isoformat(),
            "timeMax": parse_iso(end).isoformat(),
            "maxResults": self.config.calendar_max_results,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        async with log_async_execution_time(self.logger, "calendar.get_events"):
            response = await self._request(
                "GET", self._events_url, token, "Failed to fetch calendar events", params=params
            )

        items = response.json().get("items") or []
        return [CalendarEvent.from_google(item) for item in items]

    async def create_event(self, token: str, data: Dict[str, Any]) -> CalendarEvent:
        body = self._event_body(data)
        async with log_async_execution_time(self.logger, "calendar.create_event"):
            response = await self._request(
                "POST", self._events_url, token, "Failed to create calendar event", json=body
            )
        return CalendarEvent.from_google(response.json())

    async def update_event(self, token: str, event_id: str, data: Dict[str, Any]) -> CalendarEvent:
        """Patch only the fields present in ``data``"""
        body = self._event_body(data)
        async with log_async_execution_time(self.logger, "calendar.update_event", event_id=event_id):
            response = await self._request(
                "PATCH", f"{self._events_url}/{event_id}", token,
                "Failed to update calendar event", json=body
            )
        return CalendarEvent.from_google(response.json())

    async def delete_event(self, token: str, event_id: str) -> None:
        async with log_async_execution_time(self.logger, "calendar.delete_event", event_id=event_id):
            await self._request(
                "DELETE", f"{self._events_url}/{event_id}", token, "Failed to delete calendar event"
            )

    @staticmethod
    def _event_body(data: Dict[str, Any]) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if data.get("title"):
            body["summary"] = data["title"]
        if data.get("description"):
            body["description"] = data["description"]
        if data.get("location"):
            body["location"] = data["location"]
        for key in ("start", "end"):
            if data.get(key):
                slot = {"dateTime": parse_iso(data[key]).isoformat()}
                if data.get("timeZone"):
                    slot["timeZone"] = data["timeZone"]
                body[key] = slot
        if data.get("attendees"):
            body["attendees"] = [{"email": email} for email in data["attendees"]]
        return body

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()
