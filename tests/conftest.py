"""Pytest configuration and shared fixtures."""

import base64
import re
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from docker_commander.services.process import (
    DockerCmdExecutor,
    DockerProcess,
    Output,
    OutputReadyType,
)

Reply = Tuple[int, str, str]

_WRITE_SCRIPT = re.compile(
    r'^echo "(?P<data>[A-Za-z0-9+/=]*)" \| (?P<bin>\S+) --decode \| '
    r"tee (?P<append>-a )?'?(?P<path>[^' ]+)'? > /dev/null$"
)


def finished_process(
    args: List[str],
    exit_code: int = 0,
    stdout: str = "",
    stderr: str = "",
    container_name: Optional[str] = None,
) -> DockerProcess:
    """Build a DockerProcess that already ran to completion."""
    process = DockerProcess(
        args,
        container_name=container_name,
        stdout=Output("stdout"),
        stderr=Output("stderr"),
        output_ready_type=OutputReadyType.STDOUT,
    )
    if stdout:
        process.stdout.append(stdout)
    if stderr:
        process.stderr.append(stderr)
    process.stdout.close()
    process.stderr.close()
    process.set_exit_code(exit_code)
    return process


class ScriptedExecutor(DockerCmdExecutor):
    """In-memory executor that records calls and answers with canned replies.

    Containers listed in ``running`` accept execs. `which`, `cat` and the
    base64/tee write pipeline are emulated against ``files`` so composite
    commands can be exercised end to end.
    """

    def __init__(self, running=("app",)):
        super().__init__()
        self.running = set(running)
        self.commands: List[List[str]] = []
        self.execs: List[Tuple[str, str, List[str]]] = []
        self.exec_options: List[Tuple[bool, Optional[int]]] = []
        self.command_replies: Dict[str, Reply] = {}
        self.exec_handlers: Dict[str, Callable[[str, List[str]], Reply]] = {}
        self.binaries: Dict[str, str] = {
            "bash": "/bin/bash",
            "base64": "/usr/bin/base64",
            "cat": "/bin/cat",
        }
        self.files: Dict[Tuple[str, str], str] = {}

    def on_command(self, line: str, exit_code: int = 0, stdout: str = "", stderr: str = ""):
        """Reply to the engine command whose arguments start with ``line``."""
        self.command_replies[line] = (exit_code, stdout, stderr)

    def which_calls(self, command_name: Optional[str] = None) -> List[Tuple[str, str, List[str]]]:
        return [
            call
            for call in self.execs
            if call[1] == "which" and (command_name is None or call[2] == [command_name])
        ]

    def shell_calls(self) -> List[Tuple[str, str, List[str]]]:
        return [call for call in self.execs if call[1] != "which"]

    def is_container_runner_running(self, container_name: str) -> bool:
        return container_name in self.running

    async def command(self, command: str, args: List[str]) -> DockerProcess:
        argv = [command, *args]
        self.commands.append(argv)
        line = " ".join(argv)
        for prefix, (exit_code, stdout, stderr) in self.command_replies.items():
            if line.startswith(prefix):
                return finished_process(["docker", *argv], exit_code, stdout, stderr)
        return finished_process(["docker", *argv], 1, "", f"unknown command: {line}\n")

    async def _exec(
        self,
        container_name,
        command,
        args,
        output_as_lines,
        output_limit,
        stdout_ready_function,
        stderr_ready_function,
        output_ready_type,
    ) -> DockerProcess:
        self.execs.append((container_name, command, list(args)))
        self.exec_options.append((output_as_lines, output_limit))
        exit_code, stdout, stderr = self._reply(container_name, command, list(args))
        return finished_process(
            ["docker", "exec", container_name, command, *args],
            exit_code,
            stdout,
            stderr,
            container_name=container_name,
        )

    def _reply(self, container_name: str, command: str, args: List[str]) -> Reply:
        if command in self.exec_handlers:
            return self.exec_handlers[command](container_name, args)

        if command == "which":
            path = self.binaries.get(args[0])
            if path:
                return 0, f"{path}\n", ""
            return 1, "", ""

        if command == self.binaries.get("cat", "/bin/cat"):
            content = self.files.get((container_name, args[0]))
            if content is None:
                return 1, "", f"cat: {args[0]}: No such file or directory\n"
            return 0, content, ""

        if args[-2:-1] == ["-c"]:
            return self._run_script(container_name, args[-1])

        return 127, "", f"{command}: not found\n"

    def _run_script(self, container_name: str, script: str) -> Reply:
        match = _WRITE_SCRIPT.match(script.strip())
        if not match:
            return 0, "", ""
        data = base64.b64decode(match.group("data")).decode("utf-8")
        key = (container_name, match.group("path"))
        if match.group("append"):
            self.files[key] = self.files.get(key, "") + data
        else:
            self.files[key] = data
        return 0, "", ""


@pytest.fixture
def executor():
    """Scripted executor with a single running container named ``app``."""
    return ScriptedExecutor()


@pytest.fixture
def executor_factory():
    """Build scripted executors with custom running containers."""
    return ScriptedExecutor
