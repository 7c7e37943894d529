"""Executor (container engine CLI) configuration."""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings


class ExecutorConfig(BaseSettings):
    """Engine CLI and output buffering settings."""

    docker_binary: str = Field(default="docker", alias="docker_binary")
    output_wait_timeout: float = Field(
        default=30.0, gt=0, le=3600, alias="output_wait_timeout"
    )
    exec_output_as_lines: bool = Field(default=True, alias="exec_output_as_lines")
    exec_output_limit: Optional[int] = Field(
        default=None, ge=1, alias="exec_output_limit"
    )
    which_default_cat: str = Field(default="/bin/cat", alias="which_default_cat")
    which_default_sh: str = Field(default="/bin/sh", alias="which_default_sh")
    which_default_sudo: str = Field(default="/bin/sudo", alias="which_default_sudo")
    which_default_base64: str = Field(
        default="/usr/bin/base64", alias="which_default_base64"
    )

    class Config:
        env_prefix = ""
        extra = "ignore"
