"""Hook event translation and UI fan-out.

The agent CLI's own hook mechanism POSTs lifecycle events to the bridge.
They are reduced to a three-state activity vocabulary and broadcast to every
subscribed UI surface. Which workspace a ``session_id`` belongs to is the
subscriber's concern, not the translator's.

Mapping (first match wins, events without a session id are dropped):
  UserPromptSubmit (with cwd)              → running
  AskUserQuestion tool (with tool_input)   → waiting-for-input
  PermissionRequest for a non read-only tool → waiting-for-input
  Stop                                     → completed
"""

from __future__ import annotations

import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from pydantic import BaseModel, ValidationError, field_validator

from agentbridge.config import DEFAULT_READ_ONLY_TOOLS
from agentbridge.utils import get_logger, short_id, tail_path

logger = get_logger(__name__)

ASK_USER_QUESTION = "AskUserQuestion"
USER_PROMPT_SUBMIT = "UserPromptSubmit"
PERMISSION_REQUEST = "PermissionRequest"
STOP = "Stop"


class ActivityState(str, Enum):
    """What an agent session is doing, as far as the UI cares."""
    RUNNING = "running"
    WAITING_FOR_INPUT = "waiting-for-input"
    COMPLETED = "completed"


class HookEvent(BaseModel):
    """One webhook body from the agent CLI's hook mechanism."""
    model_config = {"extra": "ignore"}

    session_id: str | None = None
    hook_event_name: str | None = None
    tool_name: str | None = None
    cwd: str | None = None
    tool_input: Any = None

    @field_validator("session_id", mode="before")
    @classmethod
    def _coerce_session_id(cls, value: Any) -> str | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return str(value)
        return value if isinstance(value, str) else None

    @field_validator("hook_event_name", "tool_name", "cwd", mode="before")
    @classmethod
    def _drop_non_string(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class StatusLineUpdate(BaseModel):
    """Periodic status line snapshot for one agent session."""
    model_config = {"extra": "ignore"}

    session_id: str
    model: Any = None
    context_window: Any = None
    cost: Any = None
    workspace: Any = None


class AgentActivity(BaseModel):
    """Activity change broadcast to UI surfaces."""
    session_id: str
    state: ActivityState
    tool_name: str | None = None
    cwd: str | None = None
    tool_input: Any = None


BridgeEvent = Union[AgentActivity, StatusLineUpdate]
Subscriber = Callable[[BridgeEvent], Union[None, Awaitable[None]]]


def parse_hook_event(payload: Any) -> HookEvent:
    """Coerce a decoded JSON body into a HookEvent.

    Fields of the wrong type are dropped one by one; a numeric session id
    is kept as a string. Anything that is not an object becomes an
    empty event so it is accepted without effect.
    """
    if not isinstance(payload, dict):
        return HookEvent()
    try:
        return HookEvent.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"[hook] unusable hook payload: {e.error_count()} field error(s)")
        return HookEvent()


def translate_hook(
    event: HookEvent,
    read_only_tools: list[str] | tuple[str, ...] = tuple(DEFAULT_READ_ONLY_TOOLS),
) -> AgentActivity | None:
    """Map a hook event to an activity change, or None for no UI effect."""
    session_id = event.session_id
    if not session_id:
        logger.warning(
            "[hook] event without session id",
            extra={
                "hook_event_name": event.hook_event_name,
                "tool_name": event.tool_name,
                "has_cwd": bool(event.cwd),
            },
        )
        return None

    if event.hook_event_name == USER_PROMPT_SUBMIT and event.cwd:
        logger.info(f"[hook] → running ({USER_PROMPT_SUBMIT}) at {tail_path(event.cwd)}")
        return AgentActivity(
            session_id=session_id,
            state=ActivityState.RUNNING,
            tool_name=USER_PROMPT_SUBMIT,
            cwd=event.cwd,
        )

    if event.tool_name == ASK_USER_QUESTION and event.tool_input is not None:
        logger.info(f"[hook] → waiting-for-input ({ASK_USER_QUESTION}) at {tail_path(event.cwd)}")
        return AgentActivity(
            session_id=session_id,
            state=ActivityState.WAITING_FOR_INPUT,
            tool_name=ASK_USER_QUESTION,
            cwd=event.cwd,
            tool_input=event.tool_input,
        )

    if event.hook_event_name == PERMISSION_REQUEST:
        if event.tool_name == ASK_USER_QUESTION or event.tool_name in read_only_tools:
            return None
        logger.info(f"[hook] → waiting-for-input ({event.tool_name} permission) at {tail_path(event.cwd)}")
        return AgentActivity(
            session_id=session_id,
            state=ActivityState.WAITING_FOR_INPUT,
            tool_name=event.tool_name,
            cwd=event.cwd,
            tool_input=event.tool_input,
        )

    if event.hook_event_name == STOP:
        logger.info(f"[hook] → completed ({STOP}) {short_id(session_id)}")
        return AgentActivity(
            session_id=session_id,
            state=ActivityState.COMPLETED,
            cwd=event.cwd,
        )

    return None


def translate_status_line(payload: Any) -> StatusLineUpdate | None:
    """Extract a status line update; None when the session id is missing."""
    if not isinstance(payload, dict) or not payload.get("session_id"):
        logger.warning("[hook] status line update without session id")
        return None
    try:
        update = StatusLineUpdate.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"[hook] unusable status line payload: {e.error_count()} field error(s)")
        return None
    workspace = update.workspace if isinstance(update.workspace, dict) else {}
    logger.debug(
        f"[hook] status {short_id(update.session_id)} ({update.model or 'unknown'}) "
        f"at {tail_path(workspace.get('current_dir'))}"
    )
    return update


class ActivityHub:
    """Fan-out of bridge events to every subscribed UI surface.

    Example::

        hub = ActivityHub()
        unsubscribe = hub.subscribe(window.on_agent_event)
        await hub.broadcast(activity)
        unsubscribe()
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a sync or async callback; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def clear(self) -> None:
        self._subscribers.clear()

    async def broadcast(self, event: BridgeEvent) -> int:
        """Deliver ``event`` to every subscriber; returns how many succeeded.

        A failing subscriber is logged and does not affect the others.
        """
        delivered = 0
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[hook] subscriber {callback!r} failed: {e}", exc_info=True)
                continue
            delivered += 1
        return delivered
