"""
Unified Configuration System for the scheduling assistant

This module provides a centralized configuration system that consolidates all application settings,
supports environment-based overrides, and provides type-safe configuration access.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
import os
from pathlib import Path


DEFAULT_INSTRUCTIONS = """You are Aria, a friendly personal scheduling assistant.

You can manage the user's calendar and look up the weather with these tools:
- get_calendar_events: list events between two ISO 8601 timestamps
- create_calendar_event: add an event to the calendar
- update_calendar_event: change an existing event
- delete_calendar_event: remove an event
- check_calendar_availability: look for conflicts in a time slot
- get_weather: current weather for a city, or 'current' for the user's location
- file_search: search the documents the user uploaded

Guidelines:
- Questions about the schedule ("what do I have", "am I free") use get_calendar_events.
- For time-sensitive scheduling, check availability first, then create the event.
- Check the weather when planning outdoor activities.
- Every user message ends with a [CURRENT CONTEXT: ...] block. Always compute relative
  times ("in 25 minutes", "tomorrow evening") from the current time it gives, never
  from your own notion of the date. Near-future times are always feasible unless
  they conflict with an existing event.
- If a tool reports that calendar access requires authentication, ask the user to
  reconnect their calendar instead of retrying."""


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class APIConfig:
    """API configuration settings"""
    openai_api_key: str = ""
    openai_assistant_id: str = ""
    langfuse_secret_key: str = ""
    langfuse_public_key: str = ""
    langfuse_host: str = "https://cloud.langfuse.com"
    openweather_api_key: str = ""
    google_calendar_base_url: str = "https://www.googleapis.com/calendar/v3"
    openweather_base_url: str = "https://api.openweathermap.org/data/2.5"

    @classmethod
    def from_env(cls) -> 'APIConfig':
        """Load API config from environment variables"""
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_assistant_id=os.getenv("OPENAI_ASSISTANT_ID", ""),
            langfuse_secret_key=os.getenv("LANGFUSE_SECRET_KEY", ""),
            langfuse_public_key=os.getenv("LANGFUSE_PUBLIC_KEY", ""),
            langfuse_host=os.getenv("LANGFUSE_HOST", "https://cloud.langfuse.com"),
            openweather_api_key=os.getenv("OPENWEATHER_API_KEY", ""),
            google_calendar_base_url=os.getenv(
                "GOOGLE_CALENDAR_BASE_URL", "https://www.googleapis.com/calendar/v3"
            ),
            openweather_base_url=os.getenv(
                "OPENWEATHER_BASE_URL", "https://api.openweathermap.org/data/2.5"
            ),
        )


@dataclass
class AssistantConfig:
    """Hosted assistant configuration"""
    name: str = "Aria - Personal AI Assistant"
    model: str = "gpt-4o-mini"
    instructions: str = DEFAULT_INSTRUCTIONS
    message_history_limit: int = 50
    enable_file_search: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the keyword arguments used when creating the assistant"""
        return {
            "name": self.name,
            "model": self.model,
            "instructions": self.instructions,
        }


@dataclass
class GuardConfig:
    """Concurrency guard timings (seconds)"""
    poll_interval: float = 0.5
    wait_timeout: float = 5.0
    post_cancel_pause: float = 1.0
    lease_timeout: float = 30.0
    active_runs_page_size: int = 10


@dataclass
class RetryConfig:
    """Retry settings for idempotent provider reads"""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0


@dataclass
class ToolConfig:
    """Tool execution settings"""
    default_weather_location: str = "San Francisco, CA"
    weather_units: str = "metric"
    calendar_id: str = "primary"
    calendar_max_results: int = 50
    http_timeout: float = 15.0


@dataclass
class ServerConfig:
    """Turn-submission endpoint configuration"""
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> 'ServerConfig':
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("SERVER_HOST", "127.0.0.1"),
            port=int(os.getenv("SERVER_PORT", "8000")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


@dataclass
class ClientConfig:
    """Chat client configuration"""
    server_url: str = "http://127.0.0.1:8000"
    thread_cache_path: str = ".cache/assistant-thread.json"
    app_title: str = "Aria - AI Scheduling Assistant"

    @classmethod
    def from_env(cls) -> 'ClientConfig':
        return cls(
            server_url=os.getenv("ASSISTANT_SERVER_URL", "http://127.0.0.1:8000"),
            thread_cache_path=os.getenv("ASSISTANT_THREAD_CACHE", ".cache/assistant-thread.json"),
        )


@dataclass
class LoggingConfig:
    """Logging and monitoring configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = False
    log_file: str = "logs/app.log"
    enable_langfuse_tracing: bool = True


@dataclass
class AppConfig:
    """Main application configuration"""
    api: APIConfig = field(default_factory=APIConfig)
    assistant: AssistantConfig = field(default_factory=AssistantConfig)
    guard: GuardConfig = field(default_factory=GuardConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @classmethod
    def load(cls) -> 'AppConfig':
        """Load configuration from environment variables"""
        config = cls()

        config.api = APIConfig.from_env()
        config.server = ServerConfig.from_env()
        config.client = ClientConfig.from_env()

        config.assistant.model = os.getenv("OPENAI_MODEL", config.assistant.model)
        config.logging.level = os.getenv("LOG_LEVEL", config.logging.level).upper()
        config.logging.enable_file_logging = _env_bool(
            "LOG_TO_FILE", config.logging.enable_file_logging
        )

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not self.api.openai_api_key:
            errors.append("OpenAI API key is required")

        if self.guard.poll_interval <= 0:
            errors.append("Guard poll interval must be positive")

        if self.guard.wait_timeout < self.guard.poll_interval:
            errors.append("Guard wait timeout must be at least one poll interval")

        if self.logging.enable_file_logging:
            log_dir = Path(self.logging.log_file).parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)

        return errors

    def get_langfuse_config(self) -> Dict[str, str]:
        """Get Langfuse configuration"""
        return {
            "secret_key": self.api.langfuse_secret_key,
            "public_key": self.api.langfuse_public_key,
            "host": self.api.langfuse_host
        }


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        from config.environments import get_environment_config
        _config = get_environment_config()

        # Validate configuration
        errors = _config.validate()
        if errors:
            import warnings
            for error in errors:
                warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Reload configuration (useful for testing)"""
    global _config
    _config = None
    return get_config()
