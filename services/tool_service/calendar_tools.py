"""
Calendar tools: list, create, update, delete and availability checks.
"""

from typing import Any, Dict

from infrastructure.external.calendar_client import CalendarProvider, parse_iso
from services.errors import AuthenticationRequiredError
from utils.logging_config import get_logger

from .models import ExecutionContext

CALENDAR_AUTH_REQUIRED = "Calendar access requires authentication"


def _require_token(context: ExecutionContext) -> str:
    token = context.auth.access_token
    if not token:
        raise AuthenticationRequiredError(CALENDAR_AUTH_REQUIRED)
    return token


def _event_fields(args: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    data = {
        key: args.get(key)
        for key in ("title", "start", "end", "description", "location", "attendees")
        if args.get(key) is not None
    }
    if context.timezone:
        data["timeZone"] = context.timezone
    return data


class CalendarTools:
    """Calendar tool handlers bound to a calendar capability"""

    def __init__(self, calendar: CalendarProvider):
        self.logger = get_logger(__name__)
        self.calendar = calendar

    async def get_events(self, args: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        token = _require_token(context)
        events = await self.calendar.get_events(token, args["start"], args["end"])

        self.logger.info(f"Retrieved {len(events)} calendar events")
        return {
            "events": [
                {
                    "id": event.id,
                    "title": event.title,
                    "start": event.start,
                    "end": event.end,
                    "description": event.description,
                    "location": event.location,
                }
                for event in events
            ],
            "totalEvents": len(events),
            "dateRange": {"start": args["start"], "end": args["end"]},
        }

    async def create_event(self, args: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        token = _require_token(context)
        event = await self.calendar.create_event(token, _event_fields(args, context))

        self.logger.info(f"Created calendar event {event.id}")
        return event.to_dict()

    async def update_event(self, args: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        token = _require_token(context)
        event = await self.calendar.update_event(token, args["eventId"], _event_fields(args, context))

        self.logger.info(f"Updated calendar event {args['eventId']}")
        return event.to_dict()

    async def delete_event(self, args: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        token = _require_token(context)
        await self.calendar.delete_event(token, args["eventId"])

        self.logger.info(f"Deleted calendar event {args['eventId']}")
        return {"deleted": True, "eventId": args["eventId"]}

    async def check_availability(self, args: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        """
        Report whether [start, end) is free

        Listed events that merely touch the slot boundaries do not conflict.
        """
        token = _require_token(context)
        try:
            slot_start, slot_end = parse_iso(args["start"]), parse_iso(args["end"])
        except ValueError as e:
            raise ValueError(f"Invalid time slot: {e}") from e

        events = await self.calendar.get_events(token, args["start"], args["end"])
        conflicts = [event for event in events if event.overlaps(slot_start, slot_end)]

        self.logger.info(
            f"Calendar availability check - Available: {not conflicts}, Conflicts: {len(conflicts)}"
        )
        return {
            "available": not conflicts,
            "conflictingEvents": [
                {"id": e.id, "title": e.title, "start": e.start, "end": e.end}
                for e in conflicts
            ],
            "timeSlot": {"start": args["start"], "end": args["end"]},
        }
