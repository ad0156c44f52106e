"""Bridge lifecycle: the running instance and the manager that owns it.

BridgeInstance
  One bound port, one auth token, one discovery record, one session
  registry. Constructed by the manager on enable and disposed on disable;
  a restart always yields a fresh port and token.

BridgeManager
  The control surface the rest of the application talks to. Every
  operation is a no-op while the bridge is disabled.
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from pydantic import BaseModel

from agentbridge.bridge.detector import AgentCliInfo, detect_agent_cli
from agentbridge.bridge.discovery import DiscoveryPublisher
from agentbridge.bridge.errors import BridgeStartError
from agentbridge.bridge.hooks import ActivityHub
from agentbridge.bridge.protocol import (
    AT_MENTIONED,
    SELECTION_CHANGED,
    AtMentionedParams,
    ProtocolEngine,
    SelectionChangedParams,
    notification,
)
from agentbridge.bridge.server import BridgeServer, create_bridge_app
from agentbridge.bridge.sessions import SessionRegistry
from agentbridge.config import BridgeConfig
from agentbridge.utils import dedupe_paths, generate_token, get_logger

logger = get_logger(__name__)

PORT_ENV_VAR = "CLAUDE_CODE_SSE_PORT"
ENABLED_ENV_VAR = "ENABLE_IDE_INTEGRATION"

Detector = Callable[[str, float], Awaitable[AgentCliInfo]]


class BridgeStatus(BaseModel):
    """Snapshot returned by :meth:`BridgeManager.status`."""
    enabled: bool
    port: int | None = None


class BridgeInstance:
    """A running bridge: server, discovery record and connected sessions."""

    def __init__(
        self,
        config: BridgeConfig,
        hub: ActivityHub,
        workspace_roots: list[str] | None = None,
    ) -> None:
        self.config = config
        self.hub = hub
        self.auth_token = generate_token()
        self.workspace_roots: list[str] = dedupe_paths(workspace_roots)
        self.registry = SessionRegistry(lambda: self.workspace_roots)
        self.engine = ProtocolEngine(config.ide_name, config.server_version)
        self.publisher = DiscoveryPublisher(config.discovery_dir or None, config.ide_name)
        self.port: int | None = None
        self.discovery_path: Path | None = None
        self._server: BridgeServer | None = None

    async def start(self) -> None:
        """Bind the server and publish the discovery record.

        Raises:
            BridgeStartError: The transport server could not be started.
        """
        self._server = BridgeServer(create_bridge_app(self), self.config.host)
        self.port = await self._server.start()
        self._publish()
        logger.info(
            f"[bridge] started on port {self.port}",
            extra={"port": self.port, "workspace_folders": self.workspace_roots},
        )

    def _publish(self) -> None:
        if self.port is not None:
            self.discovery_path = self.publisher.publish(self.port, self.auth_token, self.workspace_roots)

    # ── workspace roots ───────────────────────────────────────────────────

    def update_workspace_roots(self, roots: list[str]) -> None:
        """Replace the root set and rewrite the discovery record."""
        self.workspace_roots = dedupe_paths(roots)
        self._publish()

    def merge_workspace_roots(self, roots: list[str]) -> None:
        """Append roots not yet known, keeping the existing order."""
        merged = dedupe_paths([*self.workspace_roots, *roots])
        if merged != self.workspace_roots:
            self.workspace_roots = merged
            self._publish()

    # ── outbound ──────────────────────────────────────────────────────────

    async def notify(self, method: str, file_path: str, params: BaseModel) -> bool:
        """Send a notification to the session owning ``file_path``.

        Returns:
            True if a session received it, False if it was dropped.
        """
        session = self.registry.route_by_path(file_path)
        if session is None:
            logger.debug(f"[bridge] no session for {file_path}, dropping {method}")
            return False
        return await session.send(notification(method, params))

    def env_for_child(self, env: Mapping[str, str]) -> dict[str, str]:
        return {**env, PORT_ENV_VAR: str(self.port), ENABLED_ENV_VAR: "true"}

    # ── teardown ──────────────────────────────────────────────────────────

    async def dispose(self) -> None:
        """Retract the record, close every session and stop the server.

        Never raises; sockets may already be closed.
        """
        if self.port is not None:
            self.publisher.retract(self.port)

        for session in self.registry.clear():
            with contextlib.suppress(Exception):
                await session.channel.close(code=1001)

        if self._server is not None:
            try:
                await self._server.stop()
            except Exception as e:
                logger.warning(f"[bridge] error stopping server: {e}")
            self._server = None
        logger.info(f"[bridge] disposed instance on port {self.port}")

    def abort(self) -> None:
        """Synchronous best-effort teardown for abrupt shutdown paths."""
        if self.port is not None:
            self.publisher.retract(self.port)
        if self._server is not None:
            self._server.request_exit()


class BridgeManager:
    """Process-wide owner of the (at most one) BridgeInstance.

    Example::

        manager = BridgeManager(cfg.bridge)
        manager.hub.subscribe(on_agent_event)
        if await manager.enable(["/repo/a"]):
            env = manager.env_for_child(os.environ)
        await manager.send_at_mentioned({"filePath": "/repo/a/x.py", "lineStart": 1, "lineEnd": 4})
        await manager.disable()

    Args:
        config: Bridge configuration.
        hub: Fan-out for hook events; created if omitted.
        detector: Async probe for the agent CLI; defaults to detect_agent_cli.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        hub: ActivityHub | None = None,
        detector: Detector | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self.hub = hub if hub is not None else ActivityHub()
        self._detector = detector or detect_agent_cli
        self._instance: BridgeInstance | None = None
        self._lock = asyncio.Lock()

    @property
    def instance(self) -> BridgeInstance | None:
        return self._instance

    @property
    def is_enabled(self) -> bool:
        return self._instance is not None

    async def enable(self, initial_roots: list[str] | None = None) -> bool:
        """Start the bridge, or merge ``initial_roots`` into the running one.

        Returns:
            False (with no state change) when the agent CLI is not installed,
            True otherwise.

        Raises:
            BridgeStartError: The transport server failed to start; nothing is left running.
        """
        async with self._lock:
            if self._instance is not None:
                if initial_roots:
                    self._instance.merge_workspace_roots(initial_roots)
                return True

            info = await self._detector(self.config.agent_command, self.config.detect_timeout)
            if not info.installed:
                logger.info(f"[bridge] {self.config.agent_command} not installed, skipping bridge setup")
                return False

            instance = BridgeInstance(self.config, self.hub, initial_roots)
            try:
                await instance.start()
            except BridgeStartError:
                await instance.dispose()
                raise
            self._instance = instance
            return True

    async def disable(self) -> bool:
        """Tear down the running bridge.

        Returns:
            True if a running bridge was torn down, False if already disabled.
        """
        async with self._lock:
            instance, self._instance = self._instance, None
            if instance is None:
                return False
            await instance.dispose()
            return True

    async def set_enabled(self, enabled: bool, workspace_roots: list[str] | None = None) -> bool:
        """Enable or disable in one call; returns whether the bridge is now enabled."""
        if enabled:
            return await self.enable(workspace_roots)
        await self.disable()
        return False

    def abort(self) -> None:
        """Best-effort synchronous teardown, e.g. from an atexit hook."""
        instance, self._instance = self._instance, None
        if instance is not None:
            with contextlib.suppress(Exception):
                instance.abort()

    def update_workspace_roots(self, roots: list[str]) -> None:
        if self._instance is not None:
            self._instance.update_workspace_roots(roots)

    def status(self) -> BridgeStatus:
        if self._instance is None:
            return BridgeStatus(enabled=False, port=None)
        return BridgeStatus(enabled=True, port=self._instance.port)

    async def send_selection_changed(self, params: SelectionChangedParams | Mapping[str, Any]) -> bool:
        """Push the editor selection to the session owning its file."""
        if self._instance is None:
            return False
        if not isinstance(params, SelectionChangedParams):
            params = SelectionChangedParams.model_validate(dict(params))
        return await self._instance.notify(SELECTION_CHANGED, params.file_path, params)

    async def send_at_mentioned(self, params: AtMentionedParams | Mapping[str, Any]) -> bool:
        """Tell the session owning a file that the user mentioned a range of it."""
        if self._instance is None:
            return False
        if not isinstance(params, AtMentionedParams):
            params = AtMentionedParams.model_validate(dict(params))
        return await self._instance.notify(AT_MENTIONED, params.file_path, params)

    def env_for_child(self, env: Mapping[str, str]) -> dict[str, str]:
        """Environment for a spawned agent CLI, advertising the bridge port."""
        if self._instance is None:
            return dict(env)
        return self._instance.env_for_child(env)
