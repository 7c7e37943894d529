"""Composite engine commands.

Stateless operations built only on the DockerCmdExecutor contract: file
transfer, shell resolution, host name mapping, network lifecycle, container
IP discovery and container listing. Failures are logged and reported as
None/False, except where noted.
"""

import base64
import re
import shlex
from typing import Dict, List, Optional, Union

import structlog

from ..config import settings
from ..models.errors import (
    MalformedOutputError,
    NotRunningError,
    OutputTimeoutError,
    ResolutionError,
)
from ..models.inspect import ContainerInspect, parse_container_inspect
from .process import DockerCmdExecutor, DockerProcess

logger = structlog.get_logger(__name__)

_LINE_BREAKS = re.compile(r"\r\n|\r|\n")

HOSTS_FILE = "/etc/hosts"


async def _require_which(
    executor: DockerCmdExecutor,
    container_name: str,
    command_name: str,
    default: Optional[str],
) -> str:
    path = await executor.exec_which(container_name, command_name, default=default)
    if not path:
        raise ResolutionError(container_name, command_name)
    return path


async def inspect_container(
    executor: DockerCmdExecutor, name: str, data_matcher: Optional[str] = None
) -> Optional[List[ContainerInspect]]:
    """Run `container inspect` and parse its output.

    Args:
        executor: Command executor
        name: Container name
        data_matcher: Text to wait for in stdout before parsing

    Returns:
        Parsed entries, or None if the command failed or printed no JSON
    """
    process = await executor.command("container", ["inspect", name])
    if not await process.wait_exit_and_confirm(0):
        logger.warning(
            "Container inspect failed",
            container=name,
            stderr=process.stderr.as_string.strip(),
        )
        return None

    if data_matcher is not None:
        try:
            await process.stdout.wait_for_data_match(data_matcher)
        except OutputTimeoutError as e:
            logger.warning(
                "Container inspect output incomplete", container=name, error=e.message
            )
            return None

    text = process.stdout.as_string
    if not text.strip():
        return None

    try:
        return parse_container_inspect(text)
    except MalformedOutputError as e:
        logger.warning(
            "Container inspect output malformed", container=name, error=e.message
        )
        return None


async def get_container_ip(executor: DockerCmdExecutor, name: str) -> Optional[str]:
    """Return the IP address of container ``name``, or None if unknown."""
    entries = await inspect_container(executor, name, data_matcher="IPAddress")
    if not entries:
        return None

    for entry in entries:
        network_settings = entry.network_settings
        if network_settings is not None and network_settings.ip_address is not None:
            return entry.ip_address
    return None


async def add_containers_host_mapping(
    executor: DockerCmdExecutor,
    containers_host_mapping: Dict[str, Dict[str, str]],
) -> Dict[str, bool]:
    """Make every container resolve the host names of its siblings.

    Args:
        executor: Command executor
        containers_host_mapping: container name -> {hostname: ip}

    Returns:
        container name -> whether its /etc/hosts is up to date
    """
    results: Dict[str, bool] = {}

    for container_name, own_mapping in containers_host_mapping.items():
        required: Dict[str, str] = {}
        for other_name, other_mapping in containers_host_mapping.items():
            if other_name != container_name:
                required.update(other_mapping)

        for host in own_mapping:
            required.pop(host, None)

        if not required:
            results[container_name] = True
            continue

        results[container_name] = await add_container_host_mapping(
            executor, container_name, required
        )

    return results


async def add_container_host_mapping(
    executor: DockerCmdExecutor,
    container_name: str,
    host_mapping: Dict[str, str],
) -> bool:
    """Append ``ip hostname`` lines to the container's /etc/hosts."""
    lines = "\n".join(f"{ip} {host}" for host, ip in host_mapping.items())
    return await append_file(
        executor, container_name, HOSTS_FILE, f"\n{lines}\n", sudo=True
    )


async def exec_cat(
    executor: DockerCmdExecutor,
    container_name: str,
    file_path: str,
    trim: bool = False,
) -> Optional[str]:
    """Return the contents of ``file_path`` inside the container."""
    cat_bin = await executor.exec_which(
        container_name, "cat", default=settings.which_default_cat
    )
    return await executor.exec_and_wait_stdout_as_string(
        container_name, cat_bin, [file_path], trim=trim, desired_exit_code=0
    )


async def exec_shell(
    executor: DockerCmdExecutor,
    container_name: str,
    script: str,
    sudo: bool = False,
) -> Optional[DockerProcess]:
    """Run ``script`` with `bash`, or `sh` when bash is missing.

    Line breaks in ``script`` are replaced by spaces, so it must already be
    a single shell line.

    Returns:
        The started process, or None if the container is not running

    Raises:
        ResolutionError: If no shell (or `sudo`) path is available
    """
    shell_bin = await executor.exec_which(container_name, "bash")
    if not shell_bin:
        shell_bin = await _require_which(
            executor, container_name, "sh", settings.which_default_sh
        )

    script = _LINE_BREAKS.sub(" ", script)

    if sudo:
        sudo_bin = await _require_which(
            executor, container_name, "sudo", settings.which_default_sudo
        )
        command, args = sudo_bin, [shell_bin, "-c", script]
    else:
        command, args = shell_bin, ["-c", script]

    try:
        return await executor.exec(container_name, command, args)
    except NotRunningError:
        return None


async def put_file(
    executor: DockerCmdExecutor,
    container_name: str,
    file_path: str,
    content: Union[str, bytes],
    sudo: bool = False,
    append: bool = False,
) -> bool:
    """Write ``content`` to ``file_path`` inside the container.

    The content travels base64 encoded and is decoded by the container's
    `base64` into `tee`, so it needs no shell escaping. With ``sudo`` the
    write runs through `sudo` when the container has it.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")

    try:
        base64_bin = await _require_which(
            executor, container_name, "base64", settings.which_default_base64
        )
    except ResolutionError as e:
        logger.warning("Cannot write file", container=container_name, error=e.message)
        return False

    encoded = base64.b64encode(content).decode("ascii")
    tee = "tee -a" if append else "tee"
    script = (
        f'echo "{encoded}" | {base64_bin} --decode | '
        f"{tee} {shlex.quote(file_path)} > /dev/null"
    )

    use_sudo = False
    if sudo:
        use_sudo = bool(await executor.exec_which(container_name, "sudo"))

    try:
        process = await exec_shell(executor, container_name, script, sudo=use_sudo)
    except ResolutionError as e:
        logger.warning("Cannot write file", container=container_name, error=e.message)
        return False

    if process is None:
        logger.warning(
            "Cannot write file, container not running",
            container=container_name,
            path=file_path,
        )
        return False

    ok = await process.wait_exit_and_confirm(0)
    if not ok:
        logger.warning(
            "File write failed",
            container=container_name,
            path=file_path,
            append=append,
            exit_code=process.exit_code,
            stderr=process.stderr.as_string.strip(),
        )
    return ok


async def append_file(
    executor: DockerCmdExecutor,
    container_name: str,
    file_path: str,
    content: Union[str, bytes],
    sudo: bool = False,
) -> bool:
    """Append ``content`` to ``file_path`` inside the container."""
    return await put_file(
        executor, container_name, file_path, content, sudo=sudo, append=True
    )


async def ps_container_names(
    executor: DockerCmdExecutor, all_containers: bool = True
) -> Optional[List[str]]:
    """Run `ps --format "{{.Names}}"` and return the container names.

    Returns:
        The names (possibly empty), or None if the command failed
    """
    args = ["-a"] if all_containers else []
    args += ["--format", "{{.Names}}"]

    process = await executor.command("ps", args)
    exit_code = await process.wait_exit()
    if exit_code != 0:
        logger.warning(
            "Container listing failed",
            exit_code=exit_code,
            stderr=process.stderr.as_string.strip(),
        )
        return None
    return process.stdout.as_string.split()


async def create_network(
    executor: DockerCmdExecutor, network_name: str
) -> Optional[str]:
    """Create network ``network_name``; returns its name, or None on failure."""
    if not network_name or not network_name.strip():
        return None
    network_name = network_name.strip()

    process = await executor.command("network", ["create", network_name])
    exit_code = await process.wait_exit()
    if exit_code != 0:
        logger.warning(
            "Network creation failed",
            network=network_name,
            exit_code=exit_code,
            stderr=process.stderr.as_string.strip(),
        )
        return None
    logger.info("Network created", network=network_name)
    return network_name


async def remove_network(
    executor: DockerCmdExecutor, network_name: str
) -> Optional[bool]:
    """Remove network ``network_name``.

    Returns:
        Whether the engine removed it, or None for a blank name
    """
    if not network_name or not network_name.strip():
        return None
    network_name = network_name.strip()

    process = await executor.command("network", ["rm", network_name])
    exit_code = await process.wait_exit()
    if exit_code != 0:
        logger.warning(
            "Network removal failed",
            network=network_name,
            exit_code=exit_code,
            stderr=process.stderr.as_string.strip(),
        )
        return False
    logger.info("Network removed", network=network_name)
    return True
