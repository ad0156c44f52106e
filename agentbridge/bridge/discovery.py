"""DiscoveryPublisher: the on-disk record agent CLIs read to find the bridge.

An agent CLI scans the discovery directory once, at its own startup, and
connects to whichever record lists a workspace folder containing its cwd.
There is no push channel: a record that is not rewritten after a roots
change stays stale for every agent spawned afterwards.

Layout
------
  {discovery_dir}/          ← mode 0700
    {port}.lock             ← mode 0600, carries the bearer token
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from agentbridge.utils import get_logger

logger = get_logger(__name__)


def default_discovery_dir() -> Path:
    """Directory agent CLIs scan for lock files."""
    config_dir = os.environ.get("CLAUDE_CONFIG_DIR")
    if config_dir:
        return Path(config_dir) / "ide"
    return Path.home() / ".claude" / "ide"


class DiscoveryRecord(BaseModel):
    """Contents of one ``{port}.lock`` file."""
    model_config = {"populate_by_name": True}

    pid: int
    workspace_folders: list[str] = Field(default_factory=list, alias="workspaceFolders")
    ide_name: str = Field(alias="ideName")
    transport: str = "ws"
    running_in_windows: bool = Field(default=False, alias="runningInWindows")
    auth_token: str = Field(alias="authToken")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class DiscoveryPublisher:
    """Writes and removes discovery records for one IDE name.

    Example::

        publisher = DiscoveryPublisher(default_discovery_dir(), "AgentBridge")
        path = publisher.publish(51234, token, ["/repo/a"])
        publisher.retract(51234)
    """

    def __init__(self, discovery_dir: str | Path | None, ide_name: str) -> None:
        self._dir = Path(discovery_dir) if discovery_dir else default_discovery_dir()
        self._ide_name = ide_name

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, port: int) -> Path:
        return self._dir / f"{port}.lock"

    def publish(self, port: int, token: str, roots: list[str]) -> Path:
        """Write (or overwrite) the record for ``port``.

        Failures are logged and swallowed; the bridge keeps running without
        guaranteed discoverability.

        Returns:
            Path of the record.
        """
        path = self.path_for(port)
        record = DiscoveryRecord(
            pid=os.getpid(),
            workspace_folders=list(roots),
            ide_name=self._ide_name,
            transport="ws",
            running_in_windows=sys.platform == "win32",
            auth_token=token,
        )
        try:
            self._dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            # O_CREAT mode only applies to new files; chmod covers overwrites
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(record.to_json())
            os.chmod(path, 0o600)
        except OSError as e:
            logger.error(f"[discovery] failed to write {path}: {e}")
            return path

        logger.info(
            f"[discovery] published {path.name} with {len(roots)} workspace folder(s)",
            extra={"port": port, "workspace_folders": list(roots)},
        )
        return path

    def retract(self, port: int) -> None:
        """Delete the record for ``port``; a missing file is not an error."""
        path = self.path_for(port)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning(f"[discovery] failed to remove {path}: {e}")
            return
        logger.info(f"[discovery] removed {path.name}")

    def read(self, port: int) -> DiscoveryRecord | None:
        """Load the record for ``port``, or None if absent or unreadable."""
        return _load_record(self.path_for(port))

    def list_records(self) -> list[tuple[Path, DiscoveryRecord]]:
        """Return every parseable record in the discovery directory."""
        if not self._dir.is_dir():
            return []
        records = []
        for path in sorted(self._dir.glob("*.lock")):
            record = _load_record(path)
            if record is not None:
                records.append((path, record))
        return records


def _load_record(path: Path) -> DiscoveryRecord | None:
    try:
        return DiscoveryRecord.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except FileNotFoundError:
        return None
    except (OSError, ValueError, ValidationError) as e:
        logger.debug(f"[discovery] skipping unreadable record {path}: {e}")
        return None
