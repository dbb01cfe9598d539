"""
Session Module

Per-(holder, asset) bridge sessions: state machine, balance cache,
orchestrator and panels.
"""

from .cache import BalanceCache
from .models import (
    STEADY_STATES,
    ActionKind,
    ActionResult,
    BalanceSnapshot,
    ErrorKind,
    SessionContext,
    SessionState,
    StateTransition,
    StateTransitionTrigger,
    session_key,
)
from .orchestrator import BridgeOrchestrator
from .panels import AssetPanel, PanelControls, build_panel
from .state_machine import SessionStateMachine

__all__ = [
    # Orchestrator
    "BridgeOrchestrator",
    # State Machine
    "SessionStateMachine",
    # Cache
    "BalanceCache",
    # Models
    "SessionState",
    "STEADY_STATES",
    "StateTransition",
    "StateTransitionTrigger",
    "SessionContext",
    "BalanceSnapshot",
    "ActionKind",
    "ActionResult",
    "ErrorKind",
    "session_key",
    # Panels
    "AssetPanel",
    "PanelControls",
    "build_panel",
]
