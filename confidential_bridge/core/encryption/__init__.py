"""
Encryption Module

Encrypted inputs, ephemeral keypairs and the encryption service capability
(relayer-backed or in-process).
"""

from .client import EncryptedInputBuilder, EncryptionClient, check_amount
from .mock import InputProofRejected, MockEncryptionService
from .models import (
    ZERO_HANDLE,
    AuthorizationPayload,
    DecryptionAuthorization,
    EncryptedInput,
    EphemeralKeypair,
    handle_to_hex,
    is_zero_handle,
    short_handle,
)
from .relayer import RelayerEncryptionService
from .service import EncryptionService

__all__ = [
    # Client
    "EncryptionClient",
    "EncryptedInputBuilder",
    "check_amount",
    # Services
    "EncryptionService",
    "RelayerEncryptionService",
    "MockEncryptionService",
    "InputProofRejected",
    # Models
    "EncryptedInput",
    "EphemeralKeypair",
    "AuthorizationPayload",
    "DecryptionAuthorization",
    "ZERO_HANDLE",
    "is_zero_handle",
    "handle_to_hex",
    "short_handle",
]
