"""Configuration loading and validation.

Settings are read from a TOML file and validated with pydantic models.
Every section is optional; a missing file yields the defaults.
"""

import logging
import tomllib
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from registry_tracker.adapters.http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from registry_tracker.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "registry-tracker.toml"


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/registry-tracker.db"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Logging level must be one of {allowed}")
        return v_upper


class HttpConfig(BaseModel):
    """Outbound HTTP configuration."""

    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    user_agent: str = DEFAULT_USER_AGENT


class SyncConfig(BaseModel):
    """Refresh cycle and scheduling configuration."""

    ecosystems: list[str] = Field(default_factory=lambda: ["PyPI", "NPM", "Packagist"])
    stale_after_hours: int = Field(default=24, gt=0)
    batch_size: int = Field(default=100, gt=0)
    interval_minutes: int = Field(default=10, gt=0)
    workers: int = Field(default=4, gt=0)
    update_timeout: float = Field(default=120, gt=0)

    @field_validator("ecosystems")
    @classmethod
    def validate_ecosystems(cls, v: list[str]) -> list[str]:
        """Validate that at least one ecosystem is listed."""
        if not v:
            raise ValueError("At least one ecosystem must be configured")
        return v


class GitHubConfig(BaseModel):
    """GitHub API configuration."""

    token: Optional[str] = None


class Config(BaseModel):
    """Main configuration."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)


def load_config(config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> Config:
    """Load configuration from a TOML file.

    Args:
        config_path: Path to the configuration file.

    Returns:
        The validated configuration, or the defaults if the file is missing.

    Raises:
        ConfigError: If the file cannot be parsed or fails validation.
    """
    path = Path(config_path)
    if not path.exists():
        logger.debug("No configuration file at %s, using defaults", path)
        return Config()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return Config(**data)
    except (tomllib.TOMLDecodeError, ValidationError, OSError) as e:
        raise ConfigError(f"Invalid configuration file {path}: {e}") from e
