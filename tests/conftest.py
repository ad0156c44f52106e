"""Shared fixtures for AgentBridge tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from starlette.websockets import WebSocketState

from agentbridge.bridge.detector import AgentCliInfo
from agentbridge.config import BridgeConfig


class FakeChannel:
    """Stands in for a WebSocket: records frames written to it."""

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.closed_with: int | None = None

    async def send_text(self, data: str) -> None:
        if self.client_state != WebSocketState.CONNECTED:
            raise RuntimeError("channel closed")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code
        self.client_state = WebSocketState.DISCONNECTED


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def bridge_config(tmp_path: Path) -> BridgeConfig:
    return BridgeConfig(discovery_dir=str(tmp_path / "ide"), ide_name="TestIDE")


async def cli_installed(command: str, timeout: float) -> AgentCliInfo:
    return AgentCliInfo(command=command, installed=True, version="1.2.3")


async def cli_missing(command: str, timeout: float) -> AgentCliInfo:
    return AgentCliInfo(command=command, installed=False)
