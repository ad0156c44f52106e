"""SessionRegistry: connected agent channels and path-based routing.

Owns:
  - The only strong reference to each connected Session
  - Registration order (used for adopt-on-demand and the last-resort route)
  - Resolution of a file path to the Session that should receive it

Routing (first rule that yields a Session wins):
  1. Session whose own workspace root contains the path, longest root wins.
  2. Workspace root containing the path: a Session already working below it,
     otherwise the first Session with no root, which adopts that root.
  3. The earliest registered Session.

Adopt-on-demand exists because agent CLIs do not always announce their
working directory when they connect.
"""

from __future__ import annotations

import itertools
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Sequence

from agentbridge.utils import get_logger

logger = get_logger(__name__)

_SEPARATORS = ("/", "\\")


def is_under(path: str, root: str) -> bool:
    """True when ``path`` is ``root`` itself or lies below it.

    Matching is per path segment: ``/repo/ab`` is not under ``/repo/a``.
    """
    if not root:
        return False
    trimmed = root.rstrip("/\\") or root
    if path == trimmed or path == root:
        return True
    if not path.startswith(trimmed):
        return False
    if trimmed.endswith(_SEPARATORS):
        return True
    return path[len(trimmed)] in _SEPARATORS


@dataclass(eq=False)
class Session:
    """One connected agent channel plus its routing and handshake state."""

    id: str
    channel: Any
    workspace_root: str | None = None
    handshake_complete: bool = False
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_writable(self) -> bool:
        state = getattr(self.channel, "client_state", None)
        return state is not None and state.name == "CONNECTED"

    def claim_root(self, root: str | None) -> bool:
        """Bind this session to ``root`` unless it already has one."""
        if not root or self.workspace_root:
            return False
        self.workspace_root = root
        return True

    async def send(self, message: dict[str, Any]) -> bool:
        """Write one JSON message; returns False if the channel is gone."""
        if not self.is_writable:
            logger.debug(f"[session] {self.id} not writable, dropping {message.get('method', 'reply')}")
            return False
        try:
            await self.channel.send_text(json.dumps(message))
        except Exception as e:
            # Channel closed between the state check and the write
            logger.debug(f"[session] {self.id} write failed: {e}")
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workspace_root": self.workspace_root,
            "handshake_complete": self.handshake_complete,
            "connected_at": self.connected_at.isoformat(),
        }


class SessionRegistry:
    """Tracks connected Sessions and routes file paths to them.

    Example::

        registry = SessionRegistry(lambda: ["/repo/a", "/repo/b"])
        session = registry.register(websocket, hinted_root="/repo/a")
        target = registry.route_by_path("/repo/a/src/main.py")
        registry.unregister(session.id)

    Args:
        roots: Callable returning the current workspace roots, in order.
    """

    def __init__(self, roots: Callable[[], Sequence[str]]) -> None:
        self._roots = roots
        # session id → Session, in registration order
        self._sessions: dict[str, Session] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ── membership ────────────────────────────────────────────────────────

    def register(self, channel: Any, hinted_root: str | None = None) -> Session:
        session = Session(id=str(next(self._ids)), channel=channel, workspace_root=hinted_root or None)
        self._sessions[session.id] = session
        logger.info(
            f"[session] registered {session.id} root={session.workspace_root or '-'} "
            f"(connected={len(self._sessions)})"
        )
        return session

    def unregister(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info(f"[session] unregistered {session_id} (connected={len(self._sessions)})")
        return True

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def clear(self) -> list[Session]:
        """Drop every session and return them (for teardown)."""
        dropped = list(self._sessions.values())
        self._sessions.clear()
        return dropped

    # ── routing ───────────────────────────────────────────────────────────

    def resolve_root(self, path: str) -> str | None:
        """Return the longest workspace root containing ``path``."""
        best: str | None = None
        for root in self._roots():
            if is_under(path, root) and (best is None or len(root) > len(best)):
                best = root
        return best

    def route_by_path(self, path: str) -> Session | None:
        """Pick the Session that should receive traffic about ``path``."""
        best: Session | None = None
        for session in self._sessions.values():
            root = session.workspace_root
            if root and is_under(path, root):
                if best is None or len(root) > len(best.workspace_root or ""):
                    best = session
        if best is not None:
            return best

        target = self.resolve_root(path)
        if target is not None:
            for session in self._sessions.values():
                if session.workspace_root and is_under(session.workspace_root, target):
                    return session
            for session in self._sessions.values():
                if session.claim_root(target):
                    logger.info(f"[session] {session.id} adopted workspace root {target}")
                    return session

        for session in self._sessions.values():
            return session
        return None


def root_from_uri(uri: str | None) -> str | None:
    """Turn a ``file://`` URI (or bare path) into a filesystem path."""
    if not uri:
        return None
    if uri.startswith("file://"):
        path = uri[len("file://"):]
        if os.name == "nt" and path.startswith("/") and len(path) > 2 and path[2] == ":":
            path = path[1:]
        return path or None
    return uri
