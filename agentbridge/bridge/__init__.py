"""Agent IDE bridge package.

Host application imports:
  BridgeManager           Enable/disable and the outbound control surface
  BridgeConfig            Pydantic config model (re-exported from agentbridge.config)
  ActivityHub             Subscribe UI surfaces to agent activity
  AgentActivity           Activity change (running / waiting-for-input / completed)
  StatusLineUpdate        Periodic status line snapshot

Lower-level pieces, mostly for tests and tooling:
  DiscoveryPublisher      Writes {port}.lock discovery records
  SessionRegistry         Connected sessions and path routing
  ProtocolEngine          JSON-RPC handling per session
  create_bridge_app       FastAPI app for one BridgeInstance
"""

from agentbridge.bridge.detector import AgentCliInfo, detect_agent_cli
from agentbridge.bridge.discovery import DiscoveryPublisher, DiscoveryRecord, default_discovery_dir
from agentbridge.bridge.errors import BridgeError, BridgeStartError, ProtocolError
from agentbridge.bridge.hooks import (
    ActivityHub,
    ActivityState,
    AgentActivity,
    HookEvent,
    StatusLineUpdate,
    translate_hook,
    translate_status_line,
)
from agentbridge.bridge.manager import BridgeInstance, BridgeManager, BridgeStatus
from agentbridge.bridge.protocol import AtMentionedParams, ProtocolEngine, SelectionChangedParams
from agentbridge.bridge.server import BridgeServer, create_bridge_app
from agentbridge.bridge.sessions import Session, SessionRegistry
from agentbridge.config import BridgeConfig

__all__ = [
    # host application
    "BridgeManager",
    "BridgeConfig",
    "BridgeStatus",
    "ActivityHub",
    "ActivityState",
    "AgentActivity",
    "StatusLineUpdate",
    "SelectionChangedParams",
    "AtMentionedParams",
    "BridgeError",
    "BridgeStartError",
    # lower level
    "AgentCliInfo",
    "detect_agent_cli",
    "DiscoveryPublisher",
    "DiscoveryRecord",
    "default_discovery_dir",
    "HookEvent",
    "translate_hook",
    "translate_status_line",
    "BridgeInstance",
    "ProtocolEngine",
    "ProtocolError",
    "BridgeServer",
    "create_bridge_app",
    "Session",
    "SessionRegistry",
]
