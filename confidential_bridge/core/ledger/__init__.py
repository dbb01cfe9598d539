"""
Ledger Module

Gateways to the underlying and confidential token contracts.
"""

from .base import LedgerGateway
from .mock import MockLedger
from .models import (
    LedgerAction,
    LogEntry,
    PreparedTransaction,
    TransactionReceipt,
    TransactionReference,
    TransactionStatus,
)
from .nonce_manager import NonceManager
from .rpc import JsonRpcLedger

__all__ = [
    # Gateways
    "LedgerGateway",
    "JsonRpcLedger",
    "MockLedger",
    # Models
    "LedgerAction",
    "LogEntry",
    "PreparedTransaction",
    "TransactionReceipt",
    "TransactionReference",
    "TransactionStatus",
    # Nonces
    "NonceManager",
]
