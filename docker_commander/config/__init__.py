"""Configuration management for docker-commander.

Usage:
    from docker_commander.config import settings

    # Grouped access
    settings.executor.docker_binary
    settings.logging.log_format

    # Flat access
    settings.docker_binary
    settings.output_wait_timeout
"""

from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .executor import ExecutorConfig
from .logging import LoggingConfig

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Settings loaded from environment variables and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Engine CLI
    docker_binary: str = Field(
        default="docker",
        description="Container engine command line binary",
    )

    # Output synchronization
    output_wait_timeout: float = Field(
        default=30.0,
        gt=0,
        le=3600,
        description="Default bound (seconds) for pattern and readiness waits",
    )
    exec_output_as_lines: bool = Field(
        default=True,
        description="Buffer exec output line by line instead of raw chunks",
    )
    exec_output_limit: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum buffered lines (line mode) or characters (raw mode)",
    )

    # Fallback paths used when `which` cannot resolve an executable
    which_default_cat: str = Field(default="/bin/cat")
    which_default_sh: str = Field(default="/bin/sh")
    which_default_sudo: str = Field(default="/bin/sudo")
    which_default_base64: str = Field(default="/usr/bin/base64")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @validator("log_level")
    def validate_log_level(cls, v):
        """Normalize and validate the log level name."""
        level = v.upper().strip()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @validator("log_format")
    def validate_log_format(cls, v):
        """Only json and console renderers are supported."""
        fmt = v.lower().strip()
        if fmt not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return fmt

    @property
    def executor(self) -> ExecutorConfig:
        """Access executor configuration group."""
        return ExecutorConfig(
            docker_binary=self.docker_binary,
            output_wait_timeout=self.output_wait_timeout,
            exec_output_as_lines=self.exec_output_as_lines,
            exec_output_limit=self.exec_output_limit,
            which_default_cat=self.which_default_cat,
            which_default_sh=self.which_default_sh,
            which_default_sudo=self.which_default_sudo,
            which_default_base64=self.which_default_base64,
        )

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration group."""
        return LoggingConfig(
            log_level=self.log_level,
            log_format=self.log_format,
        )


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    "ExecutorConfig",
    "LoggingConfig",
]
