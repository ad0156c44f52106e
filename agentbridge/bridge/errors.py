"""Exceptions raised by the IDE bridge."""

from __future__ import annotations

# JSON-RPC error codes used on the agent channel
METHOD_NOT_FOUND = -32601
SERVER_NOT_INITIALIZED = -32002


class BridgeError(Exception):
    """Base class for bridge failures."""


class BridgeStartError(BridgeError):
    """The transport server could not be started."""


class ProtocolError(BridgeError):
    """A JSON-RPC request that must be answered with an error reply."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, int | str]:
        return {"code": self.code, "message": self.message}
