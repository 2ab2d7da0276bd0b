"""
OpenWeatherMap client adapter for the application.
"""

from typing import Any, Dict, Optional, Protocol, Tuple

import httpx

from config.app_config import ToolConfig
from services.errors import WeatherError
from utils.logging_config import get_logger, log_async_execution_time


class WeatherProvider(Protocol):
    """Weather capability used by the get_weather tool"""

    async def get_current_weather(
        self, location: str, units: str = "metric", coordinates: Optional[Tuple[float, float]] = None
    ) -> Dict[str, Any]: ...


class OpenWeatherClient:
    """
    Adapter for the OpenWeatherMap current-weather endpoint.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openweathermap.org/data/2.5",
        config: Optional[ToolConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.logger = get_logger(__name__)
        self.config = config or ToolConfig()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.config.http_timeout)

    async def get_current_weather(
        self, location: str, units: str = "metric", coordinates: Optional[Tuple[float, float]] = None
    ) -> Dict[str, Any]:
        """
        Get current conditions for a city, or for a point when coordinates are known

        Args:
            location: City name, optionally with country ("Paris, FR")
            units: "metric" or "imperial"
            coordinates: (lat, lon) to query instead of the city name

        Returns:
            Dict with location, temperature, condition, humidity and wind speed

        Raises:
            WeatherError: If the service is unconfigured, the city is unknown
                or the request fails
        """
        if not self.api_key:
            raise WeatherError("Weather service is not configured")

        params: Dict[str, Any] = {"appid": self.api_key, "units": units}
        if coordinates is not None:
            params["lat"], params["lon"] = coordinates
        else:
            params["q"] = location

        try:
            async with log_async_execution_time(self.logger, "weather.current", location=location):
                response = await self._client.get(f"{self.base_url}/weather", params=params)
        except httpx.HTTPError as e:
            raise WeatherError("Failed to get weather information", detail=str(e)) from e

        if response.status_code == 404:
            raise WeatherError(f"Location not found: {location}")
        if response.is_error:
            self.logger.error(f"Weather API error {response.status_code}: {response.text[:200]}")
            raise WeatherError("Failed to get weather information", detail=f"HTTP {response.status_code}")

        payload = response.json()
        conditions = payload.get("weather") or [{}]
        main = payload.get("main") or {}
        return {
            "location": payload.get("name") or location,
            "temperature": round(main.get("temp", 0)),
            "feelsLike": round(main.get("feels_like", 0)),
            "condition": conditions[0].get("main", "Unknown"),
            "description": conditions[0].get("description", ""),
            "humidity": main.get("humidity"),
            "windSpeed": round((payload.get("wind") or {}).get("speed", 0)),
            "units": units,
        }

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()
