"""Engine process execution services.

This package provides the command execution and output synchronization layer:
- output.py: Output buffer with pattern and readiness waits
- handle.py: DockerProcess handle with write-once exit code
- executor.py: DockerCmdExecutor contract, derived operations and WhichCache
- local.py: Executor driving the local engine CLI
"""

from .output import Output, OutputChunk, OutputReadyFunction
from .handle import DockerProcess, OutputReadyType
from .executor import DockerCmdExecutor, WhichCache
from .local import LocalDockerExecutor

__all__ = [
    "Output",
    "OutputChunk",
    "OutputReadyFunction",
    "DockerProcess",
    "OutputReadyType",
    "DockerCmdExecutor",
    "WhichCache",
    "LocalDockerExecutor",
]
