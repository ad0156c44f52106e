"""Configuration management for AgentBridge.

Values are populated in priority order:
  1. AGENTBRIDGE_ prefixed environment variables (bridge section)
  2. config.yaml (with ${VAR} / ${VAR:-default} substitution)
  3. Field defaults

Every bridge field can be overridden with an AGENTBRIDGE_ prefixed variable:
  ide_name        ← AGENTBRIDGE_IDE_NAME
  discovery_dir   ← AGENTBRIDGE_DISCOVERY_DIR
  agent_command   ← AGENTBRIDGE_AGENT_COMMAND
  max_body_bytes  ← AGENTBRIDGE_MAX_BODY_BYTES
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

DEFAULT_READ_ONLY_TOOLS = ["Task", "Read", "Glob", "Grep", "TaskList", "TaskOutput"]


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute environment variables in config values.

    Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.
    """
    if isinstance(value, str):
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            default = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default)

        return re.sub(pattern, replacer, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(v) for v in value]
    return value


class BridgeConfig(BaseSettings):
    """IDE bridge configuration."""
    model_config = {"extra": "ignore", "env_prefix": "AGENTBRIDGE_"}

    ide_name: str = "AgentBridge"
    host: str = "127.0.0.1"
    # Empty means $CLAUDE_CONFIG_DIR/ide or ~/.claude/ide
    discovery_dir: str = ""
    agent_command: str = "claude"
    detect_timeout: float = 5.0
    max_body_bytes: int = 1024 * 1024
    read_only_tools: list[str] = Field(default_factory=lambda: list(DEFAULT_READ_ONLY_TOOLS))
    server_version: str = "0.0.1"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        **kwargs,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # env wins over init (YAML kwargs)
        return (env_settings, init_settings, dotenv_settings)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "json"


class Config(BaseSettings):
    """Main AgentBridge configuration."""
    model_config = {"extra": "ignore", "env_prefix": "AGENTBRIDGE_"}

    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str | Path = "config.yaml") -> Config:
    """Load configuration from YAML file with environment variable substitution.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Loaded and validated Config object.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        return Config()

    with open(config_path) as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        return Config()

    config_data = _substitute_env_vars(raw_config)

    bridge_data = config_data.pop("bridge", None) or {}
    return Config(bridge=BridgeConfig(**bridge_data), **config_data)


def generate_default_config(path: str | Path = "config.yaml") -> None:
    """Generate a default configuration file.

    Args:
        path: Path to write the configuration file.
    """
    default_config = """\
# AgentBridge Configuration
# Environment variables can be substituted with ${VAR_NAME} syntax

bridge:
  ide_name: "AgentBridge"
  host: "127.0.0.1"
  # Leave empty to use $CLAUDE_CONFIG_DIR/ide or ~/.claude/ide
  discovery_dir: "${AGENTBRIDGE_DISCOVERY_DIR:-}"
  agent_command: "claude"
  detect_timeout: 5.0
  max_body_bytes: 1048576
  # Permission requests for these tools do not flag the session as waiting
  read_only_tools:
    - Task
    - Read
    - Glob
    - Grep
    - TaskList
    - TaskOutput

logging:
  level: "INFO"
  format: "text"
"""

    path = Path(path)
    path.write_text(default_config)
