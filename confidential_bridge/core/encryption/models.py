"""
Encrypted values, keypairs and decryption authorizations.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from eth_utils import to_checksum_address
from nacl.public import PrivateKey, SealedBox

from ..abi import to_hex

HANDLE_SIZE = 32
ZERO_HANDLE = b"\x00" * HANDLE_SIZE
SECONDS_PER_DAY = 86400


def is_zero_handle(handle: Optional[bytes]) -> bool:
    """A missing or all-zero handle means the holder never wrapped."""
    return not handle or handle == ZERO_HANDLE


def handle_to_hex(handle: bytes) -> str:
    return to_hex(handle)


def short_handle(handle: bytes) -> str:
    """Sentinel-aware display form of a ciphertext handle."""
    if is_zero_handle(handle):
        return "No confidential balance"
    text = handle_to_hex(handle)
    return f"{text[:10]}…{text[-6:]}"


@dataclass(frozen=True)
class EncryptedInput:
    """Ciphertext handles plus one proof, bound to (contract, account)."""
    handles: Tuple[bytes, ...]
    proof: bytes
    contract_address: str
    account: str

    @property
    def handle(self) -> bytes:
        return self.handles[0]

    def is_bound_to(self, contract_address: str, account: str) -> bool:
        return (
            self.contract_address.lower() == contract_address.lower()
            and self.account.lower() == account.lower()
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handles": [handle_to_hex(h) for h in self.handles],
            "inputProof": to_hex(self.proof),
            "contractAddress": self.contract_address,
            "account": self.account,
        }


@dataclass
class EphemeralKeypair:
    """X25519 keypair that receives sealed decryption replies. Single use."""
    public_key: bytes
    private_key: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def generate(cls) -> "EphemeralKeypair":
        secret = PrivateKey.generate()
        return cls(public_key=bytes(secret.public_key), private_key=bytes(secret))

    @property
    def discarded(self) -> bool:
        return self.private_key is None

    def open_sealed(self, ciphertext: bytes) -> bytes:
        if self.private_key is None:
            raise ValueError("Keypair has been discarded")
        return SealedBox(PrivateKey(self.private_key)).decrypt(ciphertext)

    def open_value(self, ciphertext: bytes) -> int:
        """Decode a sealed big-endian cleartext integer."""
        return int.from_bytes(self.open_sealed(ciphertext), "big")

    def discard(self) -> None:
        self.private_key = None


@dataclass(frozen=True)
class AuthorizationPayload:
    """Unsigned EIP-712 decryption authorization."""
    typed_data: Dict[str, Any]
    public_key: bytes
    contract_addresses: Tuple[str, ...]
    start_timestamp: int
    duration_days: int

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY


@dataclass(frozen=True)
class DecryptionAuthorization:
    """A holder-signed, time-bounded permission to decrypt handles of the listed contracts."""
    public_key: bytes
    contract_addresses: Tuple[str, ...]
    start_timestamp: int
    duration_days: int
    signature: bytes
    user_address: str

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_valid_at(self, timestamp: Optional[float] = None) -> bool:
        now = time.time() if timestamp is None else timestamp
        return self.start_timestamp <= now < self.expires_at

    def remaining_seconds(self, timestamp: Optional[float] = None) -> float:
        now = time.time() if timestamp is None else timestamp
        return max(0.0, self.expires_at - now)

    def covers(self, contract_address: str) -> bool:
        target = to_checksum_address(contract_address)
        return any(to_checksum_address(c) == target for c in self.contract_addresses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "publicKey": to_hex(self.public_key),
            "contractAddresses": list(self.contract_addresses),
            "startTimestamp": str(self.start_timestamp),
            "durationDays": str(self.duration_days),
            "signature": to_hex(self.signature),
            "userAddress": self.user_address,
        }
