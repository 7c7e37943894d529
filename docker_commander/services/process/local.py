"""Executor that drives the local engine CLI.

Uses asyncio subprocess to invoke the engine binary and streams each pipe
into an Output buffer.
"""

import asyncio
import codecs
from typing import Callable, Dict, List, Optional, Set, Tuple

import structlog

from ...config import settings
from .executor import DockerCmdExecutor, WhichCache
from .handle import DockerProcess, OutputReadyType
from .output import Output, OutputReadyFunction

logger = structlog.get_logger(__name__)

# Exit code reported when the engine binary cannot be spawned
SPAWN_FAILED_EXIT_CODE = 127

_READ_CHUNK_SIZE = 4096


class LocalDockerExecutor(DockerCmdExecutor):
    """Runs ``<docker> <cmd> ...`` and ``<docker> exec <container> ...`` locally.

    Container runner liveness comes from ``runner_check`` when given,
    otherwise from the names registered with ``register_container_runner``.
    """

    def __init__(
        self,
        docker_binary: Optional[str] = None,
        runner_check: Optional[Callable[[str], bool]] = None,
        which_cache: Optional[WhichCache] = None,
    ):
        super().__init__(which_cache)
        self.docker_binary = docker_binary or settings.docker_binary
        self._runner_check = runner_check
        self._runners: Set[str] = set()
        self._watchers: Dict[
            asyncio.Task, Tuple[asyncio.subprocess.Process, DockerProcess]
        ] = {}

    def register_container_runner(self, container_name: str) -> None:
        """Mark the runner of ``container_name`` as active."""
        self._runners.add(container_name)

    def unregister_container_runner(self, container_name: str) -> None:
        self._runners.discard(container_name)

    def is_container_runner_running(self, container_name: str) -> bool:
        if self._runner_check is not None:
            return bool(self._runner_check(container_name))
        return container_name in self._runners

    async def command(self, command: str, args: List[str]) -> DockerProcess:
        """Run ``<docker> <command> <args...>``."""
        cmd = [self.docker_binary, command, *args]
        return await self._spawn(
            cmd,
            None,
            Output("stdout"),
            Output("stderr"),
            OutputReadyType.STDOUT,
        )

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
        cmd = [self.docker_binary, "exec", container_name, command, *args]
        stdout = Output(
            "stdout",
            output_as_lines=output_as_lines,
            limit=output_limit,
            ready_function=stdout_ready_function,
        )
        stderr = Output(
            "stderr",
            output_as_lines=output_as_lines,
            limit=output_limit,
            ready_function=stderr_ready_function,
        )
        return await self._spawn(cmd, container_name, stdout, stderr, output_ready_type)

    async def _spawn(
        self,
        cmd: List[str],
        container_name: Optional[str],
        stdout: Output,
        stderr: Output,
        output_ready_type: OutputReadyType,
    ) -> DockerProcess:
        process = DockerProcess(
            cmd,
            container_name=container_name,
            stdout=stdout,
            stderr=stderr,
            output_ready_type=output_ready_type,
        )
        logger.debug("Spawning engine process", command_line=cmd, container=container_name)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to spawn engine process", command_line=cmd, error=str(e))
            stderr.append(f"{e}\n")
            stdout.close()
            stderr.close()
            process.set_exit_code(SPAWN_FAILED_EXIT_CODE)
            return process

        task = asyncio.create_task(self._watch(proc, process))
        self._watchers[task] = (proc, process)
        task.add_done_callback(lambda t: self._watchers.pop(t, None))
        return process

    async def _watch(
        self, proc: asyncio.subprocess.Process, process: DockerProcess
    ) -> None:
        """Pump both pipes to EOF, then resolve the exit code.

        The exit code is resolved on every path, including cancellation and
        pump failures, and a killed process is always reaped.
        """
        pumps = [
            asyncio.ensure_future(self._pump(proc.stdout, process.stdout)),
            asyncio.ensure_future(self._pump(proc.stderr, process.stderr)),
        ]
        exit_code: Optional[int] = None
        try:
            await asyncio.gather(*pumps)
            exit_code = await proc.wait()
        except Exception as e:
            logger.error(
                "Engine process watch failed", command_line=process.args, error=str(e)
            )
        finally:
            for pump in pumps:
                pump.cancel()
            process.stdout.close()
            process.stderr.close()
            try:
                if exit_code is None:
                    self._kill(proc)
                    exit_code = await proc.wait()
            finally:
                if exit_code is None:
                    exit_code = proc.returncode if proc.returncode is not None else -1
                logger.debug(
                    "Engine process exited",
                    command_line=process.args,
                    container=process.container_name,
                    exit_code=exit_code,
                )
                process.set_exit_code(exit_code)

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, output: Output) -> None:
        """Feed ``stream`` into ``output`` until EOF.

        Bytes are decoded incrementally so a multi-byte character split
        across reads stays intact. In line mode each complete line becomes
        one chunk regardless of its length.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        partial: List[str] = []
        try:
            while True:
                data = await stream.read(_READ_CHUNK_SIZE)
                text = decoder.decode(data, final=not data)

                if not output.output_as_lines:
                    if text:
                        output.append(text)
                elif "\n" not in text:
                    if text:
                        partial.append(text)
                else:
                    head, _, tail = text.rpartition("\n")
                    block = "".join(partial) + head
                    partial = [tail] if tail else []
                    for line in block.split("\n"):
                        output.append(line + "\n")

                if not data:
                    if partial:
                        output.append("".join(partial))
                    break
        finally:
            output.close()

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass

    async def close(self) -> None:
        """Kill processes still running and stop watching them."""
        watched = list(self._watchers.items())
        for task, _ in watched:
            task.cancel()
        if watched:
            await asyncio.gather(*(task for task, _ in watched), return_exceptions=True)

        # A watcher cancelled before its first step never ran its cleanup
        for _, (proc, process) in watched:
            if not process.is_finished:
                self._kill(proc)
                process.stdout.close()
                process.stderr.close()
                process.set_exit_code(await proc.wait())
        logger.debug("Local executor closed", cancelled=len(watched))
