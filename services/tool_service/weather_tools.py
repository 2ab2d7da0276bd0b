"""
Weather tool.
"""

from typing import Any, Dict, Optional, Tuple

from config.app_config import ToolConfig
from infrastructure.external.weather_client import WeatherProvider
from utils.logging_config import get_logger

from .models import ExecutionContext

_UNITS = {"celsius": "metric", "fahrenheit": "imperial"}


class WeatherTools:
    """Weather tool handlers bound to a weather capability"""

    def __init__(self, weather: WeatherProvider, config: ToolConfig):
        self.logger = get_logger(__name__)
        self.weather = weather
        self.config = config

    def resolve_location(
        self, args: Dict[str, Any], context: ExecutionContext
    ) -> Tuple[str, Optional[Tuple[float, float]]]:
        """
        Pick the place to query

        "current" or a missing location means the user's own position when the
        context knows it (coordinates first, then city), otherwise the
        configured default.

        Returns:
            Tuple of the location label and (lat, lon) when known
        """
        location = (args.get("location") or "").strip()
        if location and location.lower() != "current":
            return location, None

        user_location = context.user_location
        if user_location is not None:
            coordinates = user_location.coordinates
            point = (coordinates.lat, coordinates.lon) if coordinates is not None else None
            if user_location.city or point is not None:
                return user_location.city or "your location", point

        return self.config.default_weather_location, None

    def resolve_units(self, context: ExecutionContext) -> str:
        preferences = context.preferences
        if preferences and preferences.weather_unit:
            return _UNITS.get(preferences.weather_unit.lower(), self.config.weather_units)
        return self.config.weather_units

    async def get_weather(self, args: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        location, point = self.resolve_location(args, context)
        units = self.resolve_units(context)
        if point is not None:
            result = await self.weather.get_current_weather(location, units, coordinates=point)
        else:
            result = await self.weather.get_current_weather(location, units)

        self.logger.info(f"Weather data retrieved for: {location}")
        return result
