"""Tests for discovery record publishing."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from agentbridge.bridge.discovery import DiscoveryPublisher, default_discovery_dir


@pytest.fixture
def publisher(tmp_path: Path) -> DiscoveryPublisher:
    return DiscoveryPublisher(tmp_path / "ide", "TestIDE")


class TestPublish:
    def test_writes_record(self, publisher: DiscoveryPublisher):
        path = publisher.publish(40123, "tok-1", ["/repo/a", "/repo/b"])

        assert path == publisher.directory / "40123.lock"
        data = json.loads(path.read_text())
        assert data == {
            "pid": os.getpid(),
            "workspaceFolders": ["/repo/a", "/repo/b"],
            "ideName": "TestIDE",
            "transport": "ws",
            "runningInWindows": False,
            "authToken": "tok-1",
        }

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_owner_only_permissions(self, publisher: DiscoveryPublisher):
        path = publisher.publish(40123, "tok-1", [])
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert stat.S_IMODE(publisher.directory.stat().st_mode) == 0o700

    def test_overwrite_keeps_token_and_port(self, publisher: DiscoveryPublisher):
        publisher.publish(40123, "tok-1", ["/repo/a"])
        publisher.publish(40123, "tok-1", ["/repo/b"])

        record = publisher.read(40123)
        assert record is not None
        assert record.workspace_folders == ["/repo/b"]
        assert record.auth_token == "tok-1"
        assert len(list(publisher.directory.glob("*.lock"))) == 1

    def test_write_failure_is_not_fatal(self, tmp_path: Path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        publisher = DiscoveryPublisher(blocker / "ide", "TestIDE")

        path = publisher.publish(40123, "tok", [])
        assert not path.exists()


class TestRetract:
    def test_removes_record(self, publisher: DiscoveryPublisher):
        path = publisher.publish(40123, "tok", [])
        publisher.retract(40123)
        assert not path.exists()

    def test_missing_record_is_fine(self, publisher: DiscoveryPublisher):
        publisher.retract(40123)
        publisher.retract(40123)


class TestListRecords:
    def test_lists_valid_records_only(self, publisher: DiscoveryPublisher):
        publisher.publish(1111, "a", ["/x"])
        publisher.publish(2222, "b", [])
        (publisher.directory / "3333.lock").write_text("{not json")

        found = publisher.list_records()
        assert [p.stem for p, _ in found] == ["1111", "2222"]
        assert found[0][1].workspace_folders == ["/x"]

    def test_missing_directory(self, tmp_path: Path):
        assert DiscoveryPublisher(tmp_path / "nope", "X").list_records() == []


class TestDefaultDirectory:
    def test_honours_config_dir_env(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(tmp_path))
        assert default_discovery_dir() == tmp_path / "ide"

    def test_falls_back_to_home(self, monkeypatch):
        monkeypatch.delenv("CLAUDE_CONFIG_DIR", raising=False)
        assert default_discovery_dir() == Path.home() / ".claude" / "ide"
