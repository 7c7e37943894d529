"""Error models and exception classes for docker-commander."""

import time
from typing import Optional, List, Pattern, Union
from pydantic import BaseModel, Field
from enum import Enum


class ErrorType(str, Enum):
    """Error type enumeration."""

    NOT_RUNNING = "not_running"
    EXIT_CODE_MISMATCH = "exit_code_mismatch"
    TIMEOUT = "timeout"
    RESOLUTION_FAILURE = "resolution_failure"
    MALFORMED_OUTPUT = "malformed_output"
    EXECUTION_FAILED = "execution_failed"


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: Optional[str] = Field(None, description="Name of the offending value")
    message: str = Field(..., description="Human-readable error message")
    code: Optional[str] = Field(None, description="Machine-readable error code")


class ErrorResponse(BaseModel):
    """Serializable error report."""

    error: str = Field(..., description="Main error message")
    error_type: ErrorType = Field(..., description="Error category")
    details: Optional[List[ErrorDetail]] = Field(
        None, description="Additional error details"
    )
    timestamp: float = Field(default_factory=time.time, description="Error timestamp")

    class Config:
        use_enum_values = True


# Custom Exception Classes


class DockerCommanderException(Exception):
    """Base exception for docker-commander."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.EXECUTION_FAILED,
        details: Optional[List[ErrorDetail]] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.details = details or []
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.message,
            error_type=self.error_type,
            details=self.details if self.details else None,
        )


class NotRunningError(DockerCommanderException):
    """The target container's runner is not active."""

    def __init__(self, container_name: str, **kwargs):
        self.container_name = container_name
        super().__init__(
            message=f"Container runner is not running: {container_name}",
            error_type=ErrorType.NOT_RUNNING,
            **kwargs,
        )


class ExitCodeMismatchError(DockerCommanderException):
    """Observed exit code differs from the required one."""

    def __init__(self, expected: int, actual: int, **kwargs):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=f"Expected exit code {expected}, got {actual}",
            error_type=ErrorType.EXIT_CODE_MISMATCH,
            **kwargs,
        )


class OutputTimeoutError(DockerCommanderException):
    """A pattern or readiness wait exceeded its bound."""

    def __init__(
        self,
        pattern: Optional[Union[str, Pattern]] = None,
        timeout: Optional[float] = None,
        message: str = None,
        **kwargs,
    ):
        self.pattern = pattern
        self.timeout = timeout
        if message is None:
            shown = getattr(pattern, "pattern", pattern)
            message = f"Output did not match {shown!r} within {timeout}s"
        super().__init__(message=message, error_type=ErrorType.TIMEOUT, **kwargs)


class ResolutionError(DockerCommanderException):
    """A required executable could not be resolved inside a container."""

    def __init__(self, container_name: str, command_name: str, **kwargs):
        self.container_name = container_name
        self.command_name = command_name
        kwargs.setdefault(
            "details",
            [ErrorDetail(field=command_name, message="not found", code="which")],
        )
        super().__init__(
            message=f"Cannot resolve `{command_name}` in container {container_name}",
            error_type=ErrorType.RESOLUTION_FAILURE,
            **kwargs,
        )


class MalformedOutputError(DockerCommanderException):
    """Structured command output did not parse or lacked expected keys."""

    def __init__(self, message: str = "Malformed command output", **kwargs):
        super().__init__(
            message=message, error_type=ErrorType.MALFORMED_OUTPUT, **kwargs
        )
