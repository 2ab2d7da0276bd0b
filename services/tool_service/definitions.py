"""
Tool definitions registered with the hosted assistant, and the default
registry wiring them to the calendar and weather capabilities.
"""

from typing import Any, Dict, List, Optional

from config.app_config import ToolConfig
from infrastructure.external.calendar_client import CalendarProvider
from infrastructure.external.weather_client import WeatherProvider

from .calendar_tools import CalendarTools
from .registry import Tool, ToolRegistry
from .weather_tools import WeatherTools


def _string(description: str) -> Dict[str, str]:
    return {"type": "string", "description": description}


FUNCTION_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "get_calendar_events": {
        "description": "Get existing events from the user's calendar for a specific time period",
        "parameters": {
            "type": "object",
            "properties": {
                "start": _string("Start time to retrieve events from in ISO 8601 format"),
                "end": _string("End time to retrieve events until in ISO 8601 format"),
            },
            "required": ["start", "end"],
        },
    },
    "create_calendar_event": {
        "description": "Create a new event in the user's calendar",
        "parameters": {
            "type": "object",
            "properties": {
                "title": _string("Event title/name"),
                "start": _string("Event start time in ISO 8601 format"),
                "end": _string("Event end time in ISO 8601 format"),
                "description": _string("Optional event description"),
                "location": _string("Optional event location"),
            },
            "required": ["title", "start", "end"],
        },
    },
    "update_calendar_event": {
        "description": "Update an existing calendar event",
        "parameters": {
            "type": "object",
            "properties": {
                "eventId": _string("The ID of the event to update"),
                "title": _string("New event title"),
                "start": _string("New start time in ISO 8601 format"),
                "end": _string("New end time in ISO 8601 format"),
                "description": _string("New event description"),
                "location": _string("New event location"),
            },
            "required": ["eventId"],
        },
    },
    "delete_calendar_event": {
        "description": "Delete a calendar event",
        "parameters": {
            "type": "object",
            "properties": {
                "eventId": _string("The ID of the event to delete"),
            },
            "required": ["eventId"],
        },
    },
    "check_calendar_availability": {
        "description": "Check if a time slot is available (no conflicting events)",
        "parameters": {
            "type": "object",
            "properties": {
                "start": _string("Start time to check in ISO 8601 format"),
                "end": _string("End time to check in ISO 8601 format"),
            },
            "required": ["start", "end"],
        },
    },
    "get_weather": {
        "description": "Get current weather information for a location",
        "parameters": {
            "type": "object",
            "properties": {
                "location": _string(
                    "Location to get weather for. Use 'current' for user's current location or specify a city name"
                ),
            },
            "required": [],
        },
    },
}


def tool_definitions(enable_file_search: bool = True) -> List[Dict[str, Any]]:
    """
    Tool list in the shape the Assistants API expects

    Document search runs provider-side and is never dispatched locally.
    """
    tools: List[Dict[str, Any]] = [
        {"type": "function", "function": {"name": name, **schema}}
        for name, schema in FUNCTION_SCHEMAS.items()
    ]
    if enable_file_search:
        tools.append({"type": "file_search"})
    return tools


def _required(name: str) -> tuple:
    return tuple(FUNCTION_SCHEMAS[name]["parameters"]["required"])


def build_default_registry(
    calendar: CalendarProvider,
    weather: WeatherProvider,
    config: Optional[ToolConfig] = None
) -> ToolRegistry:
    """
    Registry with the calendar and weather tools bound to the given capabilities
    """
    calendar_tools = CalendarTools(calendar)
    weather_tools = WeatherTools(weather, config or ToolConfig())

    handlers = {
        "get_calendar_events": calendar_tools.get_events,
        "create_calendar_event": calendar_tools.create_event,
        "update_calendar_event": calendar_tools.update_event,
        "delete_calendar_event": calendar_tools.delete_event,
        "check_calendar_availability": calendar_tools.check_availability,
        "get_weather": weather_tools.get_weather,
    }
    return ToolRegistry([Tool(name, handler, _required(name)) for name, handler in handlers.items()])
