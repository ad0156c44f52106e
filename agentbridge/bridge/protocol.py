"""JSON-RPC handling for one agent channel.

Each Session moves ``unhandshaked → handshaked`` exactly once, either on an
``initialize`` request or on the ``notifications/initialized`` marker.
Until then only ``initialize`` and ``ping`` are answered normally.

Outbound notifications (``selection_changed``, ``at_mentioned``) are sent
whenever the channel is writable, regardless of handshake state.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from agentbridge.bridge.errors import METHOD_NOT_FOUND, SERVER_NOT_INITIALIZED, ProtocolError
from agentbridge.bridge.sessions import Session, root_from_uri
from agentbridge.bridge.tools import TOOL_CATALOG
from agentbridge.utils import get_logger, safe_json_loads

logger = get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"
JSONRPC_VERSION = "2.0"

SELECTION_CHANGED = "selection_changed"
AT_MENTIONED = "at_mentioned"


# ── outbound payloads ─────────────────────────────────────────────────────────

class Position(BaseModel):
    line: int
    character: int


class Selection(BaseModel):
    start: Position
    end: Position
    is_empty: bool = Field(alias="isEmpty")

    model_config = {"populate_by_name": True}


class SelectionChangedParams(BaseModel):
    """Editor selection pushed to the agent owning ``filePath``."""
    model_config = {"populate_by_name": True}

    text: str
    file_path: str = Field(alias="filePath")
    file_url: str = Field(alias="fileUrl")
    selection: Selection


class AtMentionedParams(BaseModel):
    """A file range the user mentioned for the agent owning ``filePath``."""
    model_config = {"populate_by_name": True}

    file_path: str = Field(alias="filePath")
    line_start: int = Field(alias="lineStart")
    line_end: int = Field(alias="lineEnd")


# ── engine ────────────────────────────────────────────────────────────────────

class ProtocolEngine:
    """Answers JSON-RPC messages arriving on agent channels.

    The engine is stateless; handshake and workspace state live on the
    Session passed to :meth:`handle`.
    """

    def __init__(self, ide_name: str, server_version: str = "0.0.1") -> None:
        self.ide_name = ide_name
        self.server_version = server_version

    def handle(self, session: Session, raw: str | bytes) -> dict[str, Any] | None:
        """Process one inbound frame and return the reply, if any."""
        msg = safe_json_loads(raw)
        if not isinstance(msg, dict) or msg.get("jsonrpc") != JSONRPC_VERSION:
            logger.debug(f"[protocol] session {session.id} sent a non JSON-RPC frame, ignoring")
            return None

        method = msg.get("method")
        if "id" not in msg:
            self._handle_notification(session, method)
            return None

        request_id = msg["id"]
        params = msg.get("params")
        if not isinstance(params, dict):
            params = {}

        try:
            result = self._dispatch(session, method, params)
        except ProtocolError as e:
            return error_reply(request_id, e)
        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

    def _handle_notification(self, session: Session, method: Any) -> None:
        if method == "notifications/initialized":
            self._mark_handshaked(session)

    def _dispatch(self, session: Session, method: Any, params: dict[str, Any]) -> dict[str, Any]:
        if method == "ping":
            return {}

        if method == "initialize":
            self._claim_workspace(session, params)
            self._mark_handshaked(session)
            return self.capabilities()

        if not session.handshake_complete:
            raise ProtocolError(SERVER_NOT_INITIALIZED, "Server not initialized")

        if method == "tools/list":
            return {"tools": TOOL_CATALOG}
        if method == "prompts/list":
            return {"prompts": []}
        if method == "resources/list":
            return {"resources": []}
        if method == "tools/call":
            raise ProtocolError(METHOD_NOT_FOUND, f"Tool not found: {params.get('name')}")

        raise ProtocolError(METHOD_NOT_FOUND, f"Method not found: {method}")

    def capabilities(self) -> dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {
                "logging": {},
                "prompts": {"listChanged": True},
                "resources": {"subscribe": True, "listChanged": True},
                "tools": {"listChanged": True},
            },
            "serverInfo": {"name": self.ide_name, "version": self.server_version},
        }

    def _mark_handshaked(self, session: Session) -> None:
        if not session.handshake_complete:
            session.handshake_complete = True
            logger.info(f"[protocol] session {session.id} handshake complete")

    def _claim_workspace(self, session: Session, params: dict[str, Any]) -> None:
        # clientInfo.cwd first, then rootUri
        client_info = params.get("clientInfo")
        cwd = client_info.get("cwd") if isinstance(client_info, dict) else None
        root_uri = params.get("rootUri")
        candidate = cwd if isinstance(cwd, str) and cwd else None
        if candidate is None and isinstance(root_uri, str):
            candidate = root_from_uri(root_uri)
        if session.claim_root(candidate):
            logger.info(f"[protocol] session {session.id} declared workspace {candidate}")


def error_reply(request_id: Any, error: ProtocolError) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.to_dict()}


def notification(method: str, params: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """Build an outbound JSON-RPC notification frame."""
    if isinstance(params, BaseModel):
        params = params.model_dump(by_alias=True)
    return {"jsonrpc": JSONRPC_VERSION, "method": method, "params": params}
