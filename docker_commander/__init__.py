"""docker-commander: drive a container engine through its CLI.

Turns streamed process output into synchronized, queryable results and
builds file transfer, host mapping, network and discovery commands on top.
"""

from .config import settings
from .models.errors import (
    DockerCommanderException,
    NotRunningError,
    ExitCodeMismatchError,
    OutputTimeoutError,
    ResolutionError,
    MalformedOutputError,
)
from .services.process import (
    DockerCmdExecutor,
    DockerProcess,
    LocalDockerExecutor,
    Output,
    OutputReadyType,
    WhichCache,
)
from .services import commands

__version__ = "0.1.0"

__all__ = [
    "settings",
    "DockerCommanderException",
    "NotRunningError",
    "ExitCodeMismatchError",
    "OutputTimeoutError",
    "ResolutionError",
    "MalformedOutputError",
    "DockerCmdExecutor",
    "DockerProcess",
    "LocalDockerExecutor",
    "Output",
    "OutputReadyType",
    "WhichCache",
    "commands",
]
