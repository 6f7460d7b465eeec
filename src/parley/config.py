"""Messaging engine configuration.

This module provides the configuration model for the conversation engine:
retransmission and message limits, the typing cooldown, storage location
and logging options.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator


class MessagingConfig(BaseModel):
    """Global messaging engine configuration.

    Attributes:
        max_retransmit_events: Largest number of events one retransmission may span
        typing_cooldown_seconds: Minimum interval between two typing notifications
            from the same user in the same conversation
        max_text_length: Maximum message text length in characters
        append_retries: Extra append attempts, with the same sequence number,
            before an append failure is reported as an internal error
        database_url: Async SQLAlchemy URL for the SQL event log
        log_level: Logging level passed to setup_logging
        json_logs: Whether logs are rendered as JSON

    Example:
        >>> config = MessagingConfig(typing_cooldown_seconds=5.0)
        >>> config.max_retransmit_events
        100
    """

    model_config = ConfigDict(frozen=True)

    max_retransmit_events: int = Field(
        default=100, ge=1, description="Maximum events per retransmission request"
    )
    typing_cooldown_seconds: float = Field(
        default=10.0, description="Cooldown between typing notifications"
    )
    max_text_length: int = Field(default=5000, ge=1, description="Maximum message length")
    append_retries: int = Field(
        default=2, ge=0, le=10, description="Append retries with the same sequence"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///:memory:", description="Event log database URL"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=True, description="Render logs as JSON")

    @field_validator("typing_cooldown_seconds")
    @classmethod
    def validate_cooldown(cls, value: float) -> float:
        """Validate the typing cooldown is positive.

        Raises:
            ValueError: If the cooldown is zero or negative
        """
        if value <= 0:
            raise ValueError("typing_cooldown_seconds must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Normalize and validate the log level name."""
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level


def get_default_config() -> MessagingConfig:
    """Get the default messaging configuration.

    Returns:
        MessagingConfig with default values
    """
    return MessagingConfig()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def load_config_from_env() -> MessagingConfig:
    """Load messaging configuration from environment variables.

    Automatically loads variables from a .env file if present.

    Reads:
    - PARLEY_MAX_RETRANSMIT_EVENTS
    - PARLEY_TYPING_COOLDOWN_SECONDS
    - PARLEY_MAX_TEXT_LENGTH
    - PARLEY_APPEND_RETRIES
    - PARLEY_DATABASE_URL
    - PARLEY_LOG_LEVEL
    - PARLEY_JSON_LOGS (true/false)

    Returns:
        MessagingConfig loaded from environment

    Example:
        >>> os.environ["PARLEY_TYPING_COOLDOWN_SECONDS"] = "3"
        >>> load_config_from_env().typing_cooldown_seconds
        3.0
    """
    load_dotenv()

    return MessagingConfig(
        max_retransmit_events=int(os.getenv("PARLEY_MAX_RETRANSMIT_EVENTS", "100")),
        typing_cooldown_seconds=float(os.getenv("PARLEY_TYPING_COOLDOWN_SECONDS", "10")),
        max_text_length=int(os.getenv("PARLEY_MAX_TEXT_LENGTH", "5000")),
        append_retries=int(os.getenv("PARLEY_APPEND_RETRIES", "2")),
        database_url=os.getenv("PARLEY_DATABASE_URL", "sqlite+aiosqlite:///:memory:"),
        log_level=os.getenv("PARLEY_LOG_LEVEL", "INFO"),
        json_logs=_env_bool("PARLEY_JSON_LOGS", "true"),
    )
