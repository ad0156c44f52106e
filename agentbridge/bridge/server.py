"""BridgeServer: loopback HTTP listener shared by agent channels and webhooks.

Runs on an OS-assigned port on 127.0.0.1, inside the host application's
event loop. The host owns signal handling; the embedded uvicorn server
never installs handlers of its own.

Routes
------
  WS    /{any}          → agent JSON-RPC channel (bearer token required)
  POST  /agent-hook     → lifecycle hook events
  POST  /status-line    → periodic status line snapshots
  *     anything else   → 404

Authorization
-------------
  x-claude-code-ide-authorization   must equal the published auth token
  x-claude-code-workspace           optional workspace hint for the session
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import secrets
import socket
from typing import TYPE_CHECKING, Any, Iterator

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response

from agentbridge.bridge.errors import BridgeStartError
from agentbridge.bridge.hooks import parse_hook_event, translate_hook, translate_status_line
from agentbridge.utils import get_logger, short_id, tail_path

if TYPE_CHECKING:
    from agentbridge.bridge.manager import BridgeInstance

logger = get_logger(__name__)

AUTH_HEADER = "x-claude-code-ide-authorization"
WORKSPACE_HEADER = "x-claude-code-workspace"
SUBPROTOCOL = "mcp"
UNAUTHORIZED_CLOSE_CODE = 1008

_ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"]


class _BodyTooLarge(Exception):
    pass


async def _read_body(request: Request, limit: int) -> bytes:
    """Buffer the request body, refusing anything over ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise _BodyTooLarge()
    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise _BodyTooLarge()
        chunks.append(chunk)
    return b"".join(chunks)


def _token_matches(candidate: str | None, expected: str) -> bool:
    if not candidate:
        return False
    return secrets.compare_digest(candidate.encode(), expected.encode())


def create_bridge_app(bridge: BridgeInstance) -> FastAPI:
    """Build the FastAPI application for one BridgeInstance.

    Args:
        bridge: The running instance (token, registry, engine, hub, config).
    """
    app = FastAPI(
        title="AgentBridge",
        description="Local IDE bridge for agent CLIs",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    max_body = bridge.config.max_body_bytes

    async def read_json(request: Request, route: str) -> tuple[Any, JSONResponse | None]:
        try:
            body = await _read_body(request, max_body)
        except _BodyTooLarge:
            logger.warning(f"[server] {route} body exceeds {max_body} bytes, rejected")
            return None, JSONResponse({"error": "Payload too large"}, status_code=413)
        try:
            return json.loads(body), None
        except (ValueError, UnicodeDecodeError) as e:
            logger.error(f"[server] failed to parse {route} data: {e}")
            return None, JSONResponse({"error": "Invalid JSON"}, status_code=400)

    # ── agent channel ─────────────────────────────────────────────────────

    @app.websocket("/{path:path}")
    async def agent_channel(websocket: WebSocket, path: str) -> None:
        offered = websocket.scope.get("subprotocols") or []
        await websocket.accept(subprotocol=SUBPROTOCOL if SUBPROTOCOL in offered else None)

        if not _token_matches(websocket.headers.get(AUTH_HEADER), bridge.auth_token):
            logger.warning("[server] rejected agent connection with invalid token")
            await websocket.close(code=UNAUTHORIZED_CLOSE_CODE, reason="Unauthorized")
            return

        registry = bridge.registry
        session = registry.register(websocket, websocket.headers.get(WORKSPACE_HEADER))
        session_id = session.id
        deregister = registry.unregister

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                current = registry.get(session_id)
                if current is None:
                    # Torn down while we were waiting
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                reply = bridge.engine.handle(current, raw)
                if reply is not None:
                    await current.send(reply)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"[server] agent channel {session_id} failed: {e}", exc_info=True)
        finally:
            deregister(session_id)

    # ── webhooks ──────────────────────────────────────────────────────────

    @app.post("/agent-hook")
    async def agent_hook(request: Request) -> JSONResponse:
        payload, error = await read_json(request, "/agent-hook")
        if error is not None:
            return error

        event = parse_hook_event(payload)
        logger.debug(
            f"[server] hook received event={event.hook_event_name} tool={event.tool_name} "
            f"session={short_id(event.session_id)} cwd={tail_path(event.cwd)}"
        )
        activity = translate_hook(event, bridge.config.read_only_tools)
        if activity is not None:
            await bridge.hub.broadcast(activity)
        return JSONResponse({"success": True})

    @app.post("/status-line")
    async def status_line(request: Request) -> JSONResponse:
        payload, error = await read_json(request, "/status-line")
        if error is not None:
            return error

        update = translate_status_line(payload)
        if update is not None:
            await bridge.hub.broadcast(update)
        return JSONResponse({"success": True})

    # Must be last: broadest route.
    @app.api_route("/{path:path}", methods=_ALL_METHODS, include_in_schema=False)
    async def not_found(path: str) -> Response:
        return Response(status_code=404)

    return app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the host application."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class BridgeServer:
    """Runs a FastAPI app on a freshly bound loopback socket.

    Example::

        server = BridgeServer(app, "127.0.0.1")
        port = await server.start()
        ...
        await server.stop()
    """

    def __init__(self, app: FastAPI, host: str = "127.0.0.1", shutdown_timeout: float = 3.0) -> None:
        self._app = app
        self._host = host
        self._shutdown_timeout = shutdown_timeout
        self._sock: socket.socket | None = None
        self._server: _EmbeddedServer | None = None
        self._task: asyncio.Task | None = None
        self.port: int | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> int:
        """Bind, start serving and return the OS-assigned port.

        Raises:
            BridgeStartError: The socket could not be bound or uvicorn exited during startup.
        """
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._host, 0))
        except OSError as e:
            raise BridgeStartError(f"could not bind {self._host}: {e}") from e
        self._sock = sock
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(
            app=self._app,
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=self._shutdown_timeout,
        )
        self._server = _EmbeddedServer(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._task.done():
                self._close_socket()
                exc = self._task.exception() if not self._task.cancelled() else None
                raise BridgeStartError(f"bridge server exited during startup: {exc}")
            await asyncio.sleep(0.01)

        logger.info(f"[server] listening on {self._host}:{self.port}")
        return self.port

    async def stop(self) -> None:
        """Stop serving. Safe to call repeatedly or after a failed start."""
        server, task = self._server, self._task
        self._server = None
        self._task = None
        if server is not None and task is not None and not task.done():
            server.should_exit = True
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self._shutdown_timeout + 1)
            except asyncio.TimeoutError:
                logger.warning("[server] graceful shutdown timed out, forcing exit")
                server.force_exit = True
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task
            except Exception as e:
                logger.warning(f"[server] error while stopping: {e}")
        self._close_socket()
        if self.port is not None:
            logger.info(f"[server] stopped listening on port {self.port}")

    def request_exit(self) -> None:
        """Ask the server to exit without waiting (for abrupt shutdown paths)."""
        if self._server is not None:
            self._server.should_exit = True

    def _close_socket(self) -> None:
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.close()
            self._sock = None
