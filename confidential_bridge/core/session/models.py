"""
Session Models

Data models for per-(holder, asset) bridge sessions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from ..encryption.models import handle_to_hex, is_zero_handle, short_handle
from ..oracle.events import DecryptionRequestEvent

SessionKey = Tuple[str, str]


def session_key(holder: str, asset_key: str) -> SessionKey:
    return (holder.lower(), asset_key.lower())


class SessionState(str, Enum):
    """Session lifecycle states."""

    IDLE = "idle"                        # Nothing bridged yet
    MINTING = "minting"                  # Mint submitted
    MINTED = "minted"                    # Underlying balance available
    APPROVING = "approving"              # Approval for the wrapper in flight
    WRAPPING = "wrapping"                # Wrap submitted
    WRAPPED = "wrapped"                  # Confidential balance available
    ENCRYPTING = "encrypting"            # Building the encrypted unwrap amount
    UNWRAPPING = "unwrapping"            # Unwrap submitted
    AWAITING_ORACLE = "awaiting_oracle"  # Oracle request correlated, settlement pending
    DECRYPTING = "decrypting"            # Authorization signing / user decryption
    DECRYPTED = "decrypted"              # Cleartext balance obtained
    ERROR = "error"                      # Unrecoverable failure; needs reset


STEADY_STATES = frozenset({SessionState.IDLE, SessionState.MINTED, SessionState.WRAPPED})
TERMINAL_STATES = frozenset({SessionState.DECRYPTED, SessionState.ERROR})


class ErrorKind(str, Enum):
    MINT_FAILED = "mint_failed"
    WRAP_FAILED = "wrap_failed"
    UNWRAP_FAILED = "unwrap_failed"
    DECRYPT_FAILED = "decrypt_failed"


class StateTransitionTrigger(str, Enum):
    """What triggered a state transition."""

    USER_ACTION = "user_action"
    AUTOMATIC = "automatic"
    ERROR = "error"
    RECOVERY = "recovery"


class ActionKind(str, Enum):
    MINT = "mint"
    WRAP = "wrap"
    UNWRAP = "unwrap"
    DECRYPT = "decrypt"
    RESET = "reset"


@dataclass
class StateTransition:
    """Record of a state transition."""

    id: str = field(default_factory=lambda: str(uuid4()))
    from_state: SessionState = SessionState.IDLE
    to_state: SessionState = SessionState.IDLE
    trigger: StateTransitionTrigger = StateTransitionTrigger.AUTOMATIC
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reason: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fromState": self.from_state.value,
            "toState": self.to_state.value,
            "trigger": self.trigger.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "errorCode": self.error_code,
        }


@dataclass(frozen=True)
class BalanceSnapshot:
    """Last observed balances of one holder for one asset."""

    holder: str
    asset: str
    underlying_balance: int
    confidential_handle: bytes
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> SessionKey:
        return session_key(self.holder, self.asset)

    @property
    def has_confidential_balance(self) -> bool:
        return not is_zero_handle(self.confidential_handle)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "holder": self.holder,
            "asset": self.asset,
            "underlyingBalance": str(self.underlying_balance),
            "confidentialHandle": handle_to_hex(self.confidential_handle),
            "confidentialDisplay": short_handle(self.confidential_handle),
            "observedAt": self.observed_at.isoformat(),
        }


@dataclass
class SessionContext:
    """Full state of one (holder, asset) session."""

    holder: str
    asset: str
    current_state: SessionState = SessionState.IDLE
    state_entered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state_history: List[StateTransition] = field(default_factory=list)
    last_steady_state: SessionState = SessionState.IDLE

    # Action bookkeeping
    pending_action: Optional[ActionKind] = None
    queued_actions: int = 0

    # Outcomes
    decrypted_value: Optional[int] = None
    last_request: Optional[DecryptionRequestEvent] = None
    last_tx_hashes: List[str] = field(default_factory=list)

    # Error info
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    recoverable: bool = True

    @property
    def key(self) -> SessionKey:
        return session_key(self.holder, self.asset)

    @property
    def is_busy(self) -> bool:
        return self.pending_action is not None

    @property
    def is_steady(self) -> bool:
        return self.current_state in STEADY_STATES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "holder": self.holder,
            "asset": self.asset,
            "state": self.current_state.value,
            "stateEnteredAt": self.state_entered_at.isoformat(),
            "lastSteadyState": self.last_steady_state.value,
            "pendingAction": self.pending_action.value if self.pending_action else None,
            "queuedActions": self.queued_actions,
            "decryptedValue": str(self.decrypted_value) if self.decrypted_value is not None else None,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "errorMessage": self.error_message,
            "errorCode": self.error_code,
            "recoverable": self.recoverable,
        }


@dataclass
class ActionResult:
    """Outcome of one orchestrator action."""

    action: ActionKind
    asset: str
    holder: str
    state: SessionState
    tx_hashes: List[str] = field(default_factory=list)
    value: Optional[int] = None
    formatted_value: Optional[str] = None
    request: Optional[DecryptionRequestEvent] = None
    snapshot: Optional[BalanceSnapshot] = None
    warnings: List[str] = field(default_factory=list)

    def status_line(self) -> str:
        """One human-readable line describing the outcome."""
        if self.action == ActionKind.DECRYPT:
            return f"Decrypted {self.asset} balance of {self.holder}: {self.formatted_value}"
        if self.action == ActionKind.RESET:
            return f"Session {self.asset} for {self.holder} is {self.state.value}"
        line = f"{self.action.value.capitalize()} confirmed for {self.asset}: {', '.join(self.tx_hashes)}"
        if self.request is not None:
            line += f" (oracle request {self.request.request_id})"
        return line

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "asset": self.asset,
            "holder": self.holder,
            "state": self.state.value,
            "txHashes": list(self.tx_hashes),
            "value": str(self.value) if self.value is not None else None,
            "formattedValue": self.formatted_value,
            "request": self.request.to_dict() if self.request else None,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "warnings": list(self.warnings),
        }
