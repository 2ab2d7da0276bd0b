"""
Development environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig


@dataclass
class DevelopmentConfig(AppConfig):
    """Development environment configuration"""

    def __post_init__(self):
        # Start from the environment-driven base (API keys, server, client)
        base_config = AppConfig.load()

        self.api = base_config.api
        self.assistant = base_config.assistant
        self.server = base_config.server
        self.client = base_config.client
        self.logging = base_config.logging

        self.environment = "development"
        self.debug = True

        self.logging.level = "DEBUG"
        self.logging.log_file = "logs/dev-app.log"

        self.client.app_title = "🧪 Aria (DEV)"


def get_development_config() -> DevelopmentConfig:
    """Get development-specific configuration"""
    return DevelopmentConfig()
