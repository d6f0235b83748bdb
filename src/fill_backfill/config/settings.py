"""Configuration settings using Pydantic for validation."""

import os
import re
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FtxConfig(BaseModel):
    """Exchange REST API configuration."""
    rest_base_url: str = Field(default="https://ftx.com/api", description="Exchange REST API base URL")
    page_limit: int = Field(default=5000, ge=1, description="Maximum fills returned by one /fills request")
    request_timeout_seconds: int = Field(default=30, description="HTTP request timeout")
    rate_limit_requests_per_minute: int = Field(default=1800, ge=1, description="API rate limit")


class RetryConfig(BaseModel):
    """Transport retry configuration. A single attempt means failures are fatal."""
    max_attempts: int = Field(default=1, ge=1, description="Maximum request attempts")
    initial_backoff_seconds: float = Field(default=1.0, description="Initial backoff delay")
    max_backoff_seconds: float = Field(default=60.0, description="Maximum backoff delay")
    backoff_multiplier: float = Field(default=2.0, description="Backoff multiplier")
    jitter: bool = Field(default=True, description="Add jitter to backoff")


class OutputConfig(BaseModel):
    """Output partitioning configuration."""
    default_qualifier: str = Field(default="main", description="File name prefix when no sub-account is given")
    timezone: str = Field(default="UTC", description="Reference timezone for day partitioning and CLI dates")

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    output: str = Field(default="stderr", description="Log output destination")

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ['json', 'text']:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class BackfillSettings(BaseSettings):
    """Main fill backfill settings."""

    model_config = SettingsConfigDict(
        env_prefix="FILL_BACKFILL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    ftx: FtxConfig = Field(default_factory=FtxConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def substitute_env_vars(obj: Any) -> Any:
    """
    Recursively substitute environment variables in configuration objects.

    Supports syntax:
    - ${VAR_NAME} - Required variable (raises error if not found)
    - ${VAR_NAME:-default} - Optional variable with default value

    Raises:
        ValueError: If required environment variable is not found
    """
    if isinstance(obj, dict):
        return {key: substitute_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        def replace_env_var(match):
            var_expr = match.group(1)

            if ':-' in var_expr:
                var_name, default_value = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default_value)
            else:
                var_name = var_expr.strip()
                value = os.getenv(var_name)
                if value is None:
                    raise ValueError(f"Required environment variable '{var_name}' is not set")
                return value

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    else:
        return obj


def load_settings(config_file: Optional[str] = None) -> BackfillSettings:
    """
    Load settings from config file and environment variables.

    The config file supports environment variable substitution using ${VAR_NAME} syntax.

    Args:
        config_file: Path to YAML configuration file

    Returns:
        BackfillSettings: Validated configuration object

    Raises:
        ValueError: If the file is not valid YAML or required environment variables are missing
        FileNotFoundError: If config file doesn't exist
    """
    if config_file and os.path.exists(config_file):
        import yaml

        with open(config_file, 'r') as f:
            try:
                raw_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in configuration file {config_file}: {e}") from e

        config_data = substitute_env_vars(raw_config)
        return BackfillSettings(**config_data)

    elif config_file:
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    return BackfillSettings()
