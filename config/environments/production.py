"""
Production environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig


@dataclass
class ProductionConfig(AppConfig):
    """Production environment configuration"""

    def __post_init__(self):
        base_config = AppConfig.load()

        self.api = base_config.api
        self.assistant = base_config.assistant
        self.server = base_config.server
        self.client = base_config.client
        self.logging = base_config.logging

        self.environment = "production"
        self.debug = False

        # JSON logs to file, less console noise
        self.logging.level = "INFO"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/prod-app.log"

        # Give orphaned runs a little longer to settle before force-cancelling
        self.guard.wait_timeout = 8.0

        self.retry.max_retries = 4


def get_production_config() -> ProductionConfig:
    """Get production-specific configuration"""
    return ProductionConfig()
