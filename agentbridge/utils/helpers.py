"""Utility functions for AgentBridge."""

import json
import uuid
from typing import Any


def generate_token() -> str:
    """Generate a fresh bearer token for the bridge."""
    return str(uuid.uuid4())


def short_id(value: str | None, length: int = 8) -> str:
    """Abbreviate an opaque identifier for log lines."""
    if not value:
        return "-"
    return value[:length]


def tail_path(path: str | None, segments: int = 2) -> str:
    """Return the last few segments of a path, e.g. "repo/src"."""
    if not path:
        return "unknown"
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    return "/".join(parts[-segments:]) or "/"


def safe_json_loads(s: str | bytes, default: Any = None) -> Any:
    """Safely parse JSON, returning default on failure."""
    try:
        return json.loads(s)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
        return default


def dedupe_paths(paths: list[str] | tuple[str, ...] | None) -> list[str]:
    """Drop empty and duplicate entries, keeping first-seen order."""
    seen: dict[str, None] = {}
    for p in paths or ():
        if p and p not in seen:
            seen[p] = None
    return list(seen)
