"""Tests for session registration and path routing."""

from __future__ import annotations

import json

import pytest
from starlette.websockets import WebSocketState

from agentbridge.bridge.sessions import SessionRegistry, is_under, root_from_uri
from tests.conftest import FakeChannel


def make_registry(*roots: str) -> SessionRegistry:
    current = list(roots)
    return SessionRegistry(lambda: current)


class TestIsUnder:
    def test_same_path(self):
        assert is_under("/repo/a", "/repo/a")

    def test_child(self):
        assert is_under("/repo/a/src/x.ts", "/repo/a")

    def test_trailing_slash_root(self):
        assert is_under("/repo/a/x.ts", "/repo/a/")

    def test_sibling_with_shared_prefix(self):
        assert not is_under("/repo/ab/x.ts", "/repo/a")

    def test_empty_root(self):
        assert not is_under("/repo/a", "")


class TestRegistration:
    def test_register_and_unregister(self):
        registry = make_registry()
        session = registry.register(FakeChannel(), "/repo/a")

        assert session.workspace_root == "/repo/a"
        assert not session.handshake_complete
        assert session.id in registry
        assert registry.unregister(session.id)
        assert not registry.unregister(session.id)
        assert len(registry) == 0

    def test_ids_are_unique(self):
        registry = make_registry()
        ids = {registry.register(FakeChannel()).id for _ in range(5)}
        assert len(ids) == 5

    def test_empty_hint_means_unclaimed(self):
        registry = make_registry()
        assert registry.register(FakeChannel(), "").workspace_root is None

    def test_claimed_root_is_never_overwritten(self):
        registry = make_registry()
        session = registry.register(FakeChannel(), "/repo/a/deep")
        assert not session.claim_root("/repo/a")
        assert session.workspace_root == "/repo/a/deep"


class TestResolveRoot:
    def test_longest_prefix_wins(self):
        registry = make_registry("/repo", "/repo/a", "/repo/a/pkg")
        assert registry.resolve_root("/repo/a/pkg/mod.py") == "/repo/a/pkg"
        assert registry.resolve_root("/repo/a/other.py") == "/repo/a"

    def test_no_match(self):
        registry = make_registry("/repo/a")
        assert registry.resolve_root("/elsewhere/x.py") is None


class TestRouteByPath:
    @pytest.mark.parametrize("path,expected", [
        ("/repo/a/x.ts", "/repo/a"),
        ("/repo/a/pkg/x.ts", "/repo/a/pkg"),
        ("/repo/b/y.ts", "/repo/b"),
    ])
    def test_longest_session_root_wins(self, path: str, expected: str):
        roots = ("/repo/a", "/repo/a/pkg", "/repo/b")
        registry = make_registry(*roots)
        for root in roots:
            registry.register(FakeChannel(), root)

        assert registry.route_by_path(path).workspace_root == expected

    def test_no_sessions(self):
        assert make_registry("/repo/a").route_by_path("/repo/a/x.ts") is None

    def test_adopt_on_demand(self):
        registry = make_registry("/repo/a", "/repo/b")
        bound = registry.register(FakeChannel(), "/repo/a")
        unclaimed = registry.register(FakeChannel())

        assert registry.route_by_path("/repo/a/x.ts") is bound
        assert registry.route_by_path("/repo/b/x.ts") is unclaimed
        assert unclaimed.workspace_root == "/repo/b"
        # Now owned by the adopting session through rule 1
        assert registry.route_by_path("/repo/b/deeper/z.ts") is unclaimed
        assert registry.route_by_path("/repo/a/y.ts") is bound

    def test_prefers_session_working_below_root(self):
        registry = make_registry("/repo/b")
        registry.register(FakeChannel())
        nested = registry.register(FakeChannel(), "/repo/b/sub")

        assert registry.route_by_path("/repo/b/top.ts") is nested

    def test_falls_back_to_earliest_session(self):
        registry = make_registry("/repo/a")
        first = registry.register(FakeChannel(), "/repo/a")
        registry.register(FakeChannel(), "/repo/a/pkg")

        assert registry.route_by_path("/unrelated/file.py") is first

    def test_unregistered_session_is_not_routed(self):
        registry = make_registry("/repo/a")
        session = registry.register(FakeChannel(), "/repo/a")
        registry.unregister(session.id)
        assert registry.route_by_path("/repo/a/x.ts") is None


class TestSessionSend:
    @pytest.mark.asyncio
    async def test_send_writes_json(self, channel: FakeChannel):
        session = make_registry().register(channel)
        assert await session.send({"jsonrpc": "2.0", "method": "at_mentioned", "params": {}})
        assert json.loads(channel.sent[0])["method"] == "at_mentioned"

    @pytest.mark.asyncio
    async def test_send_after_close_fails_silently(self, channel: FakeChannel):
        session = make_registry().register(channel)
        channel.client_state = WebSocketState.DISCONNECTED
        assert not await session.send({"jsonrpc": "2.0", "method": "x"})
        assert channel.sent == []


class TestRootFromUri:
    def test_file_uri(self):
        assert root_from_uri("file:///repo/a") == "/repo/a"

    def test_plain_path(self):
        assert root_from_uri("/repo/a") == "/repo/a"

    def test_empty(self):
        assert root_from_uri("") is None
