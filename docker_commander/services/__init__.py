"""Services for driving the container engine."""

from .process import (
    DockerCmdExecutor,
    DockerProcess,
    LocalDockerExecutor,
    Output,
    OutputChunk,
    OutputReadyType,
    WhichCache,
)
from . import commands

__all__ = [
    "DockerCmdExecutor",
    "DockerProcess",
    "LocalDockerExecutor",
    "Output",
    "OutputChunk",
    "OutputReadyType",
    "WhichCache",
    "commands",
]
