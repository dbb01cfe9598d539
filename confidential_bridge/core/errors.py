"""
Error Classification

Defines the error taxonomy for bridge sessions.
Errors carry a category and a context that says whether re-invoking the
same action can succeed without human intervention.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    VALIDATION = "validation"       # Rejected before any external call
    CONNECTIVITY = "connectivity"   # No signer, service not ready, transport failure
    TIMEOUT = "timeout"             # Local wait abandoned
    CONTRACT = "contract"           # Reverted or failed transaction
    ORACLE = "oracle"               # Oracle request / decryption / authorization
    SESSION = "session"             # Session busy or in the wrong state
    UNKNOWN = "unknown"             # Unclassified error


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    code: Optional[str] = None
    suggested_action: Optional[str] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class BridgeError(Exception):
    """Base class for every failure surfaced by the bridge."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    code: str = "BRIDGE_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        **details: Any,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(
            category=self.category,
            recoverable=self.recoverable,
            code=self.code,
            details={k: v for k, v in details.items() if v is not None},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.context.code or self.code,
            "category": self.context.category.value,
            "recoverable": self.context.recoverable,
            "suggestedAction": self.context.suggested_action,
            "txHash": self.context.tx_hash,
            "details": self.context.details,
        }


# =============================================================================
# Validation
# =============================================================================

class ValidationError(BridgeError):
    """Input rejected before any external call was issued."""

    category = ErrorCategory.VALIDATION
    recoverable = False
    code = "VALIDATION_ERROR"


class RangeError(ValidationError):
    """Amount is not representable by the confidential integer type."""

    code = "AMOUNT_OUT_OF_RANGE"

    def __init__(self, value: int, ceiling: int, message: Optional[str] = None):
        super().__init__(
            message or f"Amount {value} is outside the allowed range (0, {ceiling}]",
            value=str(value),
            ceiling=str(ceiling),
        )
        self.value = value
        self.ceiling = ceiling


class UnknownAssetError(ValidationError):
    code = "UNKNOWN_ASSET"


class InsufficientBalanceError(ValidationError):
    """Requested amount exceeds the observed balance."""

    code = "INSUFFICIENT_BALANCE"

    def __init__(self, required: int, available: int, asset: Optional[str] = None):
        super().__init__(
            f"Amount {required} exceeds available balance {available}",
            required=str(required),
            available=str(available),
            asset=asset,
        )
        self.context.suggested_action = "Mint more of the underlying asset or reduce the amount"


# =============================================================================
# Connectivity
# =============================================================================

class ConnectivityError(BridgeError):
    """A collaborator could not be reached. Retry the same action."""

    category = ErrorCategory.CONNECTIVITY
    recoverable = True
    code = "CONNECTIVITY_ERROR"


class ServiceUnavailable(ConnectivityError):
    code = "ENCRYPTION_SERVICE_UNAVAILABLE"

    def __init__(self, message: str = "Encryption service is still initializing", **details: Any):
        super().__init__(message, **details)
        self.context.suggested_action = "Wait for the encryption service to become ready"


class SignerUnavailable(ConnectivityError):
    code = "SIGNER_UNAVAILABLE"

    def __init__(self, message: str = "No signer is bound; connect a wallet to continue", **details: Any):
        super().__init__(message, **details)


class ActionTimeoutError(BridgeError):
    """Local waiting was abandoned. Broadcast transactions are not retracted."""

    category = ErrorCategory.TIMEOUT
    recoverable = True
    code = "TIMEOUT"

    def __init__(self, operation: str, seconds: float, tx_hash: Optional[str] = None):
        super().__init__(
            f"{operation} timed out after {seconds:g}s",
            operation=operation,
            seconds=seconds,
        )
        self.operation = operation
        self.context.tx_hash = tx_hash
        if tx_hash:
            self.context.suggested_action = "Refresh balances before retrying; the transaction may still land"


# =============================================================================
# Contract
# =============================================================================

class ContractError(BridgeError):
    """Smart contract execution error."""

    category = ErrorCategory.CONTRACT
    recoverable = False
    code = "CONTRACT_ERROR"

    def __init__(
        self,
        message: str = "Contract error",
        tx_hash: Optional[str] = None,
        contract_address: Optional[str] = None,
        function_name: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(
            message,
            contract=contract_address,
            function=function_name,
            revert_reason=reason,
        )
        self.tx_hash = tx_hash
        self.context.tx_hash = tx_hash
        self.context.suggested_action = "Refresh balances before deciding to retry"


class TransactionRevertedError(ContractError):
    code = "TRANSACTION_REVERTED"


class BroadcastUncertainError(ContractError):
    """The node may have accepted a transaction whose submission failed locally."""

    code = "BROADCAST_UNCERTAIN"

    def __init__(self, message: str = "Broadcast outcome unknown", tx_hash: Optional[str] = None, **kwargs: Any):
        super().__init__(message, tx_hash=tx_hash, **kwargs)
        self.context.suggested_action = f"Look up {tx_hash or 'the transaction'} before retrying; it may still confirm"


# =============================================================================
# Oracle
# =============================================================================

class OracleError(BridgeError):
    category = ErrorCategory.ORACLE
    recoverable = True
    code = "ORACLE_ERROR"


class OracleRequestNotFound(OracleError):
    code = "ORACLE_REQUEST_NOT_FOUND"


class DecryptionFailed(OracleError):
    code = "DECRYPTION_FAILED"


class AuthorizationExpired(OracleError):
    code = "AUTHORIZATION_EXPIRED"


class AuthorizationDeclined(OracleError):
    code = "AUTHORIZATION_DECLINED"

    def __init__(self, message: str = "The holder declined to sign the decryption authorization", **details: Any):
        super().__init__(message, **details)


class SettlementPending(OracleError):
    """The oracle has not yet fulfilled an unwrap request."""

    code = "SETTLEMENT_PENDING"


# =============================================================================
# Session
# =============================================================================

class SessionError(BridgeError):
    category = ErrorCategory.SESSION
    recoverable = True
    code = "SESSION_ERROR"


class SessionBusyError(SessionError):
    code = "SESSION_BUSY"


class SessionFailedError(SessionError):
    """Session sits in Error and must be reset after a balance refresh."""

    code = "SESSION_FAILED"
    recoverable = False


class InvalidTransitionError(SessionError):
    code = "INVALID_TRANSITION"
    recoverable = False

    def __init__(self, from_state: Any, to_state: Any, message: Optional[str] = None):
        super().__init__(
            message or f"Invalid transition from {from_state} to {to_state}",
            from_state=str(getattr(from_state, "value", from_state)),
            to_state=str(getattr(to_state, "value", to_state)),
        )
        self.from_state = from_state
        self.to_state = to_state


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Bridge errors carry their own context; anything else is classified from
    its type and message.
    """
    if isinstance(error, BridgeError):
        return error.context

    message = str(error).lower()

    if isinstance(error, TimeoutError):
        return ErrorContext(
            category=ErrorCategory.TIMEOUT,
            recoverable=True,
            code="TIMEOUT",
            suggested_action="Retry with longer timeout",
        )

    network_patterns = [
        "connection",
        "network",
        "unreachable",
        "refused",
        "dns",
        "socket",
        "ssl",
    ]
    if any(p in message for p in network_patterns):
        return ErrorContext(
            category=ErrorCategory.CONNECTIVITY,
            recoverable=True,
            code="CONNECTIVITY_ERROR",
            suggested_action="Check network connectivity",
        )

    revert_patterns = [
        "revert",
        "execution reverted",
        "transaction failed",
        "out of gas",
        "insufficient funds",
    ]
    if any(p in message for p in revert_patterns):
        return ErrorContext(
            category=ErrorCategory.CONTRACT,
            recoverable=False,
            code="CONTRACT_ERROR",
            suggested_action="Review transaction parameters",
        )

    return ErrorContext(
        category=ErrorCategory.UNKNOWN,
        recoverable=False,
        code="UNEXPECTED_ERROR",
    )
