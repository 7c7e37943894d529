"""Command executor contract and its derived operations.

Concrete executors only implement liveness, engine commands and in-container
execution; everything else here is built on those three.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import structlog

from ...config import settings
from ...models.errors import (
    ExitCodeMismatchError,
    NotRunningError,
    OutputTimeoutError,
)
from .handle import DockerProcess, OutputReadyType
from .output import DataMatcher, Output, OutputReadyFunction

logger = structlog.get_logger(__name__)

_ANY_CHARACTER = re.compile(r".", re.DOTALL)


class WhichCache:
    """Resolved executable paths per container.

    An empty string is a cached negative result. Each (container, command)
    key has its own lock so a key is resolved by one caller at a time.
    """

    def __init__(self):
        self._entries: Dict[str, Dict[str, str]] = {}
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def __len__(self) -> int:
        return sum(len(commands) for commands in self._entries.values())

    def __contains__(self, key: Tuple[str, str]) -> bool:
        container_name, command_name = key
        return command_name in self._entries.get(container_name, {})

    def get(self, container_name: str, command_name: str) -> Optional[str]:
        return self._entries.get(container_name, {}).get(command_name)

    def put(self, container_name: str, command_name: str, path: str) -> None:
        self._entries.setdefault(container_name, {})[command_name] = path

    def lock(self, container_name: str, command_name: str) -> asyncio.Lock:
        return self._locks.setdefault((container_name, command_name), asyncio.Lock())

    def clear(self, container_name: Optional[str] = None) -> None:
        """Drop every entry, or only the entries of one container."""
        if container_name is None:
            self._entries.clear()
            self._locks.clear()
            return
        self._entries.pop(container_name, None)
        for key in [k for k in self._locks if k[0] == container_name]:
            del self._locks[key]


class DockerCmdExecutor(ABC):
    """Runs engine commands and in-container commands.

    Subclasses differ by transport (local process, remote daemon) and
    implement ``is_container_runner_running``, ``command`` and ``_exec``.
    """

    def __init__(self, which_cache: Optional[WhichCache] = None):
        self._which_cache = which_cache if which_cache is not None else WhichCache()

    @property
    def which_cache(self) -> WhichCache:
        return self._which_cache

    @abstractmethod
    def is_container_runner_running(self, container_name: str) -> bool:
        """Return True if the runner of ``container_name`` is active."""

    @abstractmethod
    async def command(self, command: str, args: List[str]) -> DockerProcess:
        """Issue an engine-level command, e.g. ``network create <name>``."""

    @abstractmethod
    async def _exec(
        self,
        container_name: str,
        command: str,
        args: List[str],
        output_as_lines: bool,
        output_limit: Optional[int],
        stdout_ready_function: Optional[OutputReadyFunction],
        stderr_ready_function: Optional[OutputReadyFunction],
        output_ready_type: OutputReadyType,
    ) -> DockerProcess:
        """Spawn ``command`` inside a container known to be running."""

    async def exec(
        self,
        container_name: str,
        command: str,
        args: List[str],
        output_as_lines: Optional[bool] = None,
        output_limit: Optional[int] = None,
        stdout_ready_function: Optional[OutputReadyFunction] = None,
        stderr_ready_function: Optional[OutputReadyFunction] = None,
        output_ready_type: OutputReadyType = OutputReadyType.STDOUT,
    ) -> DockerProcess:
        """Execute ``command`` with ``args`` inside ``container_name``.

        Raises:
            NotRunningError: If the container runner is not active. Nothing
                is spawned in that case.
        """
        if not self.is_container_runner_running(container_name):
            logger.warning(
                "Exec refused, container runner not running",
                container=container_name,
                command=command,
            )
            raise NotRunningError(container_name)

        if output_as_lines is None:
            output_as_lines = settings.exec_output_as_lines
        if output_limit is None:
            output_limit = settings.exec_output_limit

        return await self._exec(
            container_name,
            command,
            list(args),
            output_as_lines,
            output_limit,
            stdout_ready_function,
            stderr_ready_function,
            output_ready_type,
        )

    async def exec_and_wait_exit(
        self,
        container_name: str,
        command: str,
        args: List[str],
        desired_exit_code: Optional[int] = None,
    ) -> int:
        """Call ``exec`` then ``wait_exit``."""
        process = await self.exec(container_name, command, args)
        return await process.wait_exit(desired_exit_code)

    async def exec_and_confirm_exit(
        self,
        container_name: str,
        command: str,
        args: List[str],
        desired_exit_code: int,
    ) -> bool:
        """Call ``exec`` then ``wait_exit_and_confirm``."""
        process = await self.exec(container_name, command, args)
        return await process.wait_exit_and_confirm(desired_exit_code)

    async def exec_and_wait_stdout(
        self,
        container_name: str,
        command: str,
        args: List[str],
        desired_exit_code: Optional[int] = None,
    ) -> Output:
        """Call ``exec`` then ``wait_stdout``."""
        process = await self.exec(container_name, command, args)
        return await process.wait_stdout(desired_exit_code)

    async def exec_and_wait_stderr(
        self,
        container_name: str,
        command: str,
        args: List[str],
        desired_exit_code: Optional[int] = None,
    ) -> Output:
        """Call ``exec`` then ``wait_stderr``."""
        process = await self.exec(container_name, command, args)
        return await process.wait_stderr(desired_exit_code)

    async def exec_and_wait_stdout_as_string(
        self,
        container_name: str,
        command: str,
        args: List[str],
        trim: bool = False,
        desired_exit_code: Optional[int] = None,
        data_matcher: Optional[DataMatcher] = None,
        timeout: Optional[float] = None,
    ) -> Optional[str]:
        """Call ``exec_and_wait_stdout`` and return the output as a string.

        Returns None when no output is produced: the container is not
        running or the exit code differs from ``desired_exit_code``.
        """
        try:
            output = await self.exec_and_wait_stdout(
                container_name, command, args, desired_exit_code=desired_exit_code
            )
        except (NotRunningError, ExitCodeMismatchError) as e:
            logger.debug(
                "No stdout produced",
                container=container_name,
                command=command,
                error=e.message,
            )
            return None
        return await self._wait_output_as_string(output, trim, data_matcher, timeout)

    async def exec_and_wait_stderr_as_string(
        self,
        container_name: str,
        command: str,
        args: List[str],
        trim: bool = False,
        desired_exit_code: Optional[int] = None,
        data_matcher: Optional[DataMatcher] = None,
        timeout: Optional[float] = None,
    ) -> Optional[str]:
        """Call ``exec_and_wait_stderr`` and return the output as a string."""
        try:
            output = await self.exec_and_wait_stderr(
                container_name, command, args, desired_exit_code=desired_exit_code
            )
        except (NotRunningError, ExitCodeMismatchError) as e:
            logger.debug(
                "No stderr produced",
                container=container_name,
                command=command,
                error=e.message,
            )
            return None
        return await self._wait_output_as_string(output, trim, data_matcher, timeout)

    async def _wait_output_as_string(
        self,
        output: Optional[Output],
        trim: bool,
        data_matcher: Optional[DataMatcher] = None,
        timeout: Optional[float] = None,
    ) -> Optional[str]:
        if output is None:
            return None
        if data_matcher is None:
            data_matcher = _ANY_CHARACTER

        try:
            await output.wait_for_data_match(data_matcher, timeout=timeout)
        except OutputTimeoutError:
            # A closed stream holds everything it will ever hold.
            if not output.closed:
                raise

        text = output.as_string
        return text.strip() if trim else text

    async def exec_which(
        self,
        container_name: str,
        command_name: str,
        ignore_cache: bool = False,
        default: Optional[str] = None,
    ) -> Optional[str]:
        """Resolve the path of ``command_name`` inside a container with `which`.

        Results, including "not found", are cached per (container, command)
        and never expire; pass ``ignore_cache`` to resolve again.

        Returns:
            The executable path, or ``default`` if it cannot be resolved
        """
        if not command_name or not command_name.strip():
            return default
        command_name = command_name.strip()

        cache = self._which_cache
        if not ignore_cache:
            cached = cache.get(container_name, command_name)
            if cached is not None:
                logger.debug(
                    "which cache hit", container=container_name, command=command_name
                )
                return cached or default

        async with cache.lock(container_name, command_name):
            if not ignore_cache:
                # Another caller may have resolved it while we waited.
                cached = cache.get(container_name, command_name)
                if cached is not None:
                    return cached or default

            try:
                output = await self.exec_and_wait_stdout(
                    container_name, "which", [command_name], desired_exit_code=0
                )
                path = await self._wait_output_as_string(output, True, command_name)
            except NotRunningError:
                return default
            except ExitCodeMismatchError:
                path = ""
            except OutputTimeoutError as e:
                logger.warning(
                    "which output timed out",
                    container=container_name,
                    command=command_name,
                    error=e.message,
                )
                return default

            path = path or ""
            cache.put(container_name, command_name, path)
            logger.debug(
                "which resolved",
                container=container_name,
                command=command_name,
                path=path or None,
            )

        return path or default
