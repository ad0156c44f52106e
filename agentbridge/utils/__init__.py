"""AgentBridge utilities."""

from agentbridge.utils.helpers import (
    dedupe_paths,
    generate_token,
    safe_json_loads,
    short_id,
    tail_path,
)
from agentbridge.utils.logging import get_logger, setup_logging

__all__ = [
    "dedupe_paths",
    "generate_token",
    "safe_json_loads",
    "short_id",
    "tail_path",
    "setup_logging",
    "get_logger",
]
