"""Tests for hook event translation and UI fan-out."""

from __future__ import annotations

import pytest

from agentbridge.bridge.hooks import (
    ActivityHub,
    ActivityState,
    AgentActivity,
    HookEvent,
    parse_hook_event,
    translate_hook,
    translate_status_line,
)


def hook(**fields) -> HookEvent:
    return parse_hook_event(fields)


class TestTranslateHook:
    def test_prompt_submit_is_running(self):
        activity = translate_hook(hook(session_id="s1", hook_event_name="UserPromptSubmit", cwd="/repo/a"))
        assert activity.state == ActivityState.RUNNING
        assert activity.cwd == "/repo/a"

    def test_prompt_submit_without_cwd_has_no_effect(self):
        assert translate_hook(hook(session_id="s1", hook_event_name="UserPromptSubmit")) is None

    def test_ask_user_question_waits_for_input(self):
        activity = translate_hook(hook(session_id="s1", tool_name="AskUserQuestion", tool_input={"q": "x"}))
        assert activity.state == ActivityState.WAITING_FOR_INPUT
        assert activity.tool_input == {"q": "x"}

    def test_ask_user_question_with_empty_input(self):
        activity = translate_hook(hook(session_id="s1", tool_name="AskUserQuestion", tool_input={}))
        assert activity.state == ActivityState.WAITING_FOR_INPUT
        assert activity.tool_input == {}

    def test_ask_user_question_beats_permission_request(self):
        activity = translate_hook(hook(
            session_id="s1",
            hook_event_name="PermissionRequest",
            tool_name="AskUserQuestion",
            tool_input={"q": "x"},
            cwd="/repo/a",
        ))
        assert activity.state == ActivityState.WAITING_FOR_INPUT
        assert activity.tool_name == "AskUserQuestion"
        assert activity.cwd == "/repo/a"

    def test_permission_request_for_write_tool(self):
        activity = translate_hook(hook(session_id="s1", hook_event_name="PermissionRequest", tool_name="Bash"))
        assert activity.state == ActivityState.WAITING_FOR_INPUT
        assert activity.tool_name == "Bash"

    @pytest.mark.parametrize("tool", ["Task", "Read", "Glob", "Grep", "TaskList", "TaskOutput"])
    def test_permission_request_for_read_only_tool(self, tool: str):
        assert translate_hook(hook(session_id="s1", hook_event_name="PermissionRequest", tool_name=tool)) is None

    def test_custom_read_only_allowlist(self):
        event = hook(session_id="s1", hook_event_name="PermissionRequest", tool_name="WebFetch")
        assert translate_hook(event, ["WebFetch"]) is None

    def test_stop_is_completed(self):
        activity = translate_hook(hook(session_id="s1", hook_event_name="Stop"))
        assert activity == AgentActivity(session_id="s1", state=ActivityState.COMPLETED)

    def test_other_events_have_no_effect(self):
        assert translate_hook(hook(session_id="s1", hook_event_name="PreToolUse", tool_name="Edit")) is None
        assert translate_hook(hook(session_id="s1", hook_event_name="Notification")) is None

    def test_numeric_session_id_is_kept(self):
        activity = translate_hook(hook(session_id=42, hook_event_name="Stop"))
        assert activity == AgentActivity(session_id="42", state=ActivityState.COMPLETED)

    def test_bad_cwd_does_not_drop_stop(self):
        activity = translate_hook(hook(session_id="s1", hook_event_name="Stop", cwd=5))
        assert activity.state == ActivityState.COMPLETED
        assert activity.cwd is None

    def test_missing_session_id(self):
        assert translate_hook(hook(hook_event_name="Stop")) is None

    def test_state_values(self):
        assert [s.value for s in ActivityState] == ["running", "waiting-for-input", "completed"]


class TestParseHookEvent:
    def test_ignores_unknown_fields(self):
        event = parse_hook_event({"session_id": "s1", "transcript_path": "/tmp/t.jsonl"})
        assert event.session_id == "s1"

    def test_non_object_payload(self):
        assert parse_hook_event([1, 2]) == HookEvent()

    def test_wrong_field_types(self):
        assert parse_hook_event({"session_id": {"nested": True}}) == HookEvent()

    def test_wrong_field_types_are_dropped_individually(self):
        event = parse_hook_event({"session_id": "s1", "hook_event_name": "Stop", "tool_name": ["x"], "cwd": 5})
        assert event == HookEvent(session_id="s1", hook_event_name="Stop")


class TestStatusLine:
    def test_translates_update(self):
        update = translate_status_line({
            "session_id": "s1",
            "model": {"id": "m", "display_name": "Model"},
            "context_window": {"used": 10},
            "cost": {"total_cost_usd": 0.5},
            "workspace": {"current_dir": "/repo/a"},
        })
        assert update.session_id == "s1"
        assert update.cost == {"total_cost_usd": 0.5}
        assert update.workspace == {"current_dir": "/repo/a"}

    def test_missing_session(self):
        assert translate_status_line({"model": "m"}) is None


class TestActivityHub:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_subscriber(self):
        hub = ActivityHub()
        sync_seen, async_seen = [], []

        async def async_subscriber(event):
            async_seen.append(event)

        hub.subscribe(sync_seen.append)
        hub.subscribe(async_subscriber)

        event = AgentActivity(session_id="s1", state=ActivityState.COMPLETED)
        assert await hub.broadcast(event) == 2
        assert sync_seen == [event]
        assert async_seen == [event]

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_isolated(self):
        hub = ActivityHub()
        seen = []

        def broken(event):
            raise RuntimeError("window destroyed")

        hub.subscribe(broken)
        hub.subscribe(seen.append)

        delivered = await hub.broadcast(AgentActivity(session_id="s1", state=ActivityState.RUNNING))
        assert delivered == 1
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        hub = ActivityHub()
        seen = []
        unsubscribe = hub.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        await hub.broadcast(AgentActivity(session_id="s1", state=ActivityState.RUNNING))
        assert seen == []
        assert len(hub) == 0
