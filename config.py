# config.py
"""Configuration settings for the story workflow gateway.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import structlog
from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()
load_dotenv(".env.local")

logger = structlog.get_logger()

DEFAULT_STORY_API_URL = "http://localhost:3000"
BACKOFF_STRATEGIES = ("fixed", "exponential")


class GatewaySettings(BaseSettings):
    """Full configuration for the gateway."""

    # Workflow endpoint
    STORY_API_URL: str = DEFAULT_STORY_API_URL

    # Retry behaviour
    STORY_API_RETRY_ATTEMPTS: int = 3
    STORY_API_RETRY_DELAY_SECONDS: float = 2.0
    STORY_API_BACKOFF_STRATEGY: str = "fixed"
    STORY_API_MAX_RETRY_DELAY_SECONDS: float = 30.0
    STORY_API_RETRY_JITTER: bool = False

    # Timeouts
    HTTPX_TIMEOUT: float = 120.0
    HEALTH_CHECK_TIMEOUT: float = 5.0
    STORY_OPERATION_TIMEOUT_SECONDS: float | None = 600.0
    DISCONNECT_POLL_INTERVAL_SECONDS: float = 0.5

    # Request validation
    STRICT_STORY_VALIDATION: bool = False

    # HTTP server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8090
    API_PREFIX: str = "/api"
    SERVICE_NAME: str = "story-workflow-gateway"

    # Logging
    LOG_LEVEL_STR: str = Field("INFO", alias="LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_DIR: str = "logs"
    LOG_FILE: str | None = "story_gateway.log"
    ENABLE_RICH_LOGGING: bool = True
    LOG_BODY_MAX_CHARS: int = 2000

    @field_validator("STORY_API_BACKOFF_STRATEGY")
    @classmethod
    def _known_strategy(cls, value: str) -> str:
        strategy = value.strip().lower()
        if strategy not in BACKOFF_STRATEGIES:
            raise ValueError(
                f"STORY_API_BACKOFF_STRATEGY must be one of {BACKOFF_STRATEGIES}, got '{value}'"
            )
        return strategy

    @model_validator(mode="after")
    def check_retry_settings(self) -> GatewaySettings:
        if self.STORY_API_RETRY_ATTEMPTS < 1:
            raise ValueError("STORY_API_RETRY_ATTEMPTS must be at least 1")
        if self.STORY_API_RETRY_DELAY_SECONDS < 0:
            raise ValueError("STORY_API_RETRY_DELAY_SECONDS cannot be negative")
        if self.STORY_API_MAX_RETRY_DELAY_SECONDS < self.STORY_API_RETRY_DELAY_SECONDS:
            raise ValueError(
                "STORY_API_MAX_RETRY_DELAY_SECONDS must not be below STORY_API_RETRY_DELAY_SECONDS"
            )
        if self.HTTPX_TIMEOUT <= 0:
            raise ValueError("HTTPX_TIMEOUT must be positive")
        return self

    @model_validator(mode="after")
    def warn_default_story_url(self) -> GatewaySettings:
        if self.STORY_API_URL == DEFAULT_STORY_API_URL:
            logger.warning(
                "STORY_API_URL not found in environment, using default",
                story_api_url=self.STORY_API_URL,
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=(".env", ".env.local"),
        extra="ignore",
        populate_by_name=True,
    )


settings = GatewaySettings()
