"""Data models for docker-commander."""

from .errors import (
    ErrorType,
    ErrorDetail,
    ErrorResponse,
    DockerCommanderException,
    NotRunningError,
    ExitCodeMismatchError,
    OutputTimeoutError,
    ResolutionError,
    MalformedOutputError,
)
from .inspect import (
    ContainerInspect,
    NetworkEndpoint,
    NetworkSettings,
    parse_container_inspect,
)

__all__ = [
    # Errors
    "ErrorType",
    "ErrorDetail",
    "ErrorResponse",
    "DockerCommanderException",
    "NotRunningError",
    "ExitCodeMismatchError",
    "OutputTimeoutError",
    "ResolutionError",
    "MalformedOutputError",
    # Inspect
    "ContainerInspect",
    "NetworkEndpoint",
    "NetworkSettings",
    "parse_container_inspect",
]
