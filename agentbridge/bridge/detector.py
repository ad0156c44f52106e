"""Detection of the agent CLI on this host.

The bridge is only worth starting when the agent CLI that reads the
discovery record is installed.
"""

from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass

from agentbridge.utils import get_logger

logger = get_logger(__name__)

_VERSION_RE = re.compile(r"(\d+\.\d+\.\d+)")


@dataclass
class AgentCliInfo:
    """Result of probing for an agent CLI."""

    command: str
    installed: bool
    version: str | None = None
    path: str | None = None


async def detect_agent_cli(command: str, timeout: float = 5.0) -> AgentCliInfo:
    """Probe for ``command`` by resolving it on PATH and running ``--version``.

    Never raises: any failure reports the CLI as not installed.
    """
    resolved = shutil.which(command)
    if resolved is None:
        logger.debug(f"[detector] {command} not found on PATH")
        return AgentCliInfo(command=command, installed=False)

    try:
        proc = await asyncio.create_subprocess_exec(
            resolved, "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning(f"[detector] failed to run {resolved}: {e}")
        return AgentCliInfo(command=command, installed=False, path=resolved)

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"[detector] {command} --version timed out after {timeout}s")
        proc.kill()
        await proc.wait()
        return AgentCliInfo(command=command, installed=False, path=resolved)

    if proc.returncode != 0:
        logger.debug(f"[detector] {command} --version exited with {proc.returncode}")
        return AgentCliInfo(command=command, installed=False, path=resolved)

    match = _VERSION_RE.search(stdout.decode(errors="replace"))
    info = AgentCliInfo(
        command=command,
        installed=True,
        version=match.group(1) if match else None,
        path=resolved,
    )
    logger.info(f"[detector] found {command} {info.version or '(unknown version)'} at {resolved}")
    return info
