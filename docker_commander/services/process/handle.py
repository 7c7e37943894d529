"""Process handle for one engine invocation."""

import asyncio
from enum import Enum
from typing import List, Optional

import structlog

from ...models.errors import ExitCodeMismatchError, OutputTimeoutError
from .output import Output

logger = structlog.get_logger(__name__)


class OutputReadyType(str, Enum):
    """Which stream's readiness gates the process readiness."""

    STDOUT = "stdout"
    STDERR = "stderr"
    ANY = "any"


class DockerProcess:
    """One spawned engine command or in-container exec.

    Owns the stdout/stderr buffers and a write-once exit code slot. The
    spawned process is only observed: every wait returns the same terminal
    result no matter how many times it is called.
    """

    def __init__(
        self,
        args: List[str],
        container_name: Optional[str] = None,
        stdout: Optional[Output] = None,
        stderr: Optional[Output] = None,
        output_ready_type: OutputReadyType = OutputReadyType.STDOUT,
    ):
        self.args = list(args)
        self.container_name = container_name
        self.stdout = stdout if stdout is not None else Output("stdout")
        self.stderr = stderr if stderr is not None else Output("stderr")
        self.output_ready_type = OutputReadyType(output_ready_type)
        self._exit_code: Optional[int] = None
        self._exited = asyncio.Event()

    def __repr__(self) -> str:
        return (
            f"DockerProcess(args={self.args!r}, container={self.container_name!r}, "
            f"exit_code={self._exit_code})"
        )

    @property
    def exit_code(self) -> Optional[int]:
        """Exit code, or None while the process is still running."""
        return self._exit_code

    @property
    def is_finished(self) -> bool:
        return self._exit_code is not None

    @property
    def is_ready(self) -> bool:
        if self.output_ready_type == OutputReadyType.STDERR:
            return self.stderr.is_ready
        if self.output_ready_type == OutputReadyType.STDOUT:
            return self.stdout.is_ready
        return self.stdout.is_ready or self.stderr.is_ready

    def set_exit_code(self, exit_code: int) -> None:
        """Resolve the exit code slot. May only be called once."""
        if self._exit_code is not None:
            raise RuntimeError(
                f"Exit code already set to {self._exit_code} for {self.args!r}"
            )
        self._exit_code = exit_code
        self._exited.set()

    async def wait_exit(
        self, desired_exit_code: Optional[int] = None, timeout: Optional[float] = None
    ) -> int:
        """Wait for the process to exit.

        Args:
            desired_exit_code: If given, the exit code the caller requires
            timeout: Optional bound in seconds; waits indefinitely if None

        Returns:
            The exit code

        Raises:
            ExitCodeMismatchError: If the code differs from ``desired_exit_code``
            OutputTimeoutError: If the process did not exit within ``timeout``
        """
        if timeout is None:
            await self._exited.wait()
        else:
            try:
                await asyncio.wait_for(self._exited.wait(), timeout)
            except asyncio.TimeoutError:
                raise OutputTimeoutError(
                    timeout=timeout,
                    message=f"Process did not exit within {timeout}s",
                ) from None

        exit_code = self._exit_code
        if desired_exit_code is not None and exit_code != desired_exit_code:
            raise ExitCodeMismatchError(desired_exit_code, exit_code)
        return exit_code

    async def wait_exit_and_confirm(self, exit_code: int) -> bool:
        """Wait for exit and report whether it exited with ``exit_code``."""
        try:
            await self.wait_exit(exit_code)
        except ExitCodeMismatchError as e:
            logger.debug(
                "Exit code not confirmed",
                command_line=self.args,
                expected=e.expected,
                actual=e.actual,
            )
            return False
        return True

    async def wait_stdout(self, desired_exit_code: Optional[int] = None) -> Output:
        """Wait for exit (optionally confirmed) and return stdout."""
        await self.wait_exit(desired_exit_code)
        return self.stdout

    async def wait_stderr(self, desired_exit_code: Optional[int] = None) -> Output:
        """Wait for exit (optionally confirmed) and return stderr."""
        await self.wait_exit(desired_exit_code)
        return self.stderr

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait until the stream(s) selected by ``output_ready_type`` are ready."""
        if self.output_ready_type == OutputReadyType.STDOUT:
            return await self.stdout.wait_ready(timeout)
        if self.output_ready_type == OutputReadyType.STDERR:
            return await self.stderr.wait_ready(timeout)

        if self.is_ready:
            return True

        tasks = [
            asyncio.ensure_future(output.wait_ready(timeout))
            for output in (self.stdout, self.stderr)
        ]
        error = None
        try:
            for finished in asyncio.as_completed(tasks):
                try:
                    return await finished
                except OutputTimeoutError as e:
                    error = e
            raise error
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
                elif not task.cancelled():
                    task.exception()
