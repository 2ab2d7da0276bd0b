"""
Assistant HTTP server entry point.

Run with ``python server.py`` or ``uvicorn server:app``.
"""

from typing import Optional

import uvicorn

from config.app_config import AppConfig, get_config
from infrastructure.api.server import create_app
from infrastructure.external.calendar_client import GoogleCalendarClient
from infrastructure.external.langfuse_client import create_tracer
from infrastructure.external.openai_client import OpenAIAssistantClient
from infrastructure.external.weather_client import OpenWeatherClient
from services.assistant_service import AssistantService, RunCoordinator, RunGuard
from services.tool_service import build_default_registry
from utils.logging_config import get_logger, initialize_logging

initialize_logging()
logger = get_logger(__name__)


def build_app(config: Optional[AppConfig] = None):
    """
    Wire the provider, tools, guard and tracer into a FastAPI application
    """
    config = config or get_config()

    provider = OpenAIAssistantClient(config)
    calendar = GoogleCalendarClient(config.api.google_calendar_base_url, config.tools)
    weather = OpenWeatherClient(
        config.api.openweather_api_key, config.api.openweather_base_url, config.tools
    )
    registry = build_default_registry(calendar, weather, config.tools)

    guard = RunGuard(provider, config.guard)
    coordinator = RunCoordinator(provider, registry, guard, config.assistant.message_history_limit)
    tracer = create_tracer(config)
    service = AssistantService(
        provider, coordinator, guard, tracer=tracer,
        message_limit=config.assistant.message_history_limit
    )

    async def shutdown():
        await calendar.aclose()
        await weather.aclose()
        if tracer is not None:
            tracer.flush()

    logger.info(f"Assistant server configured ({config.environment}), tools: {registry.names()}")
    return create_app(service, config, on_shutdown=shutdown)


app = build_app()


if __name__ == "__main__":
    settings = get_config().server
    uvicorn.run(app, host=settings.host, port=settings.port)
