"""
Ledger transaction models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class LedgerAction(str, Enum):
    """State-changing calls issued to the asset contracts."""
    MINT = "mint"
    APPROVE = "approve"
    WRAP = "wrap"
    UNWRAP = "unwrap"


class TransactionStatus(str, Enum):
    """Transaction lifecycle status."""
    SUBMITTED = "submitted"      # Broadcast to network
    CONFIRMED = "confirmed"      # Successfully confirmed
    REVERTED = "reverted"        # On-chain revert
    TIMEOUT = "timeout"          # Confirmation timeout


@dataclass(frozen=True)
class TransactionReference:
    """Handle on a broadcast transaction."""
    tx_hash: str
    action: LedgerAction
    contract_address: str
    from_address: str
    nonce: Optional[int] = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class LogEntry:
    """A raw event log as found in a receipt."""
    address: str
    topics: Tuple[str, ...]
    data: str
    log_index: int = 0

    @classmethod
    def from_rpc(cls, raw: Dict[str, Any]) -> "LogEntry":
        return cls(
            address=raw.get("address", ""),
            topics=tuple(raw.get("topics") or ()),
            data=raw.get("data") or "0x",
            log_index=int(raw.get("logIndex", "0x0"), 16) if isinstance(raw.get("logIndex"), str) else int(raw.get("logIndex") or 0),
        )


@dataclass
class TransactionReceipt:
    """Result of a mined transaction."""
    tx_hash: str
    status: TransactionStatus
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    logs: List[LogEntry] = field(default_factory=list)
    revert_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED


@dataclass
class PreparedTransaction:
    """A transaction ready to be signed and broadcast."""
    action: LedgerAction
    chain_id: int
    from_address: str
    to_address: str
    data: str                                   # Encoded calldata (hex)
    nonce: int
    gas_limit: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    value: int = 0

    def to_signable(self) -> Dict[str, Any]:
        """Transaction dict in the shape eth-account signs (EIP-1559)."""
        return {
            "type": 2,
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "to": self.to_address,
            "value": self.value,
            "data": self.data,
            "gas": self.gas_limit,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }
