"""
In-process encryption service.

Stands in for the relayer in tests and offline mode. Handles are random
32-byte references into a local registry; the "ciphertext" never leaves the
process. Input proofs are HMACs over (contract, account, handles) and are
single use. Decryption replies are sealed to the ephemeral public key exactly
like the relayer's, so the client-side path is the same.
"""

import asyncio
import hashlib
import hmac
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence, Set, Tuple

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import to_checksum_address
from nacl.public import PublicKey, SealedBox

from ..authorization.typed_data import build_domain, build_user_decrypt_typed_data
from ..errors import AuthorizationExpired, DecryptionFailed, ServiceUnavailable
from .models import ZERO_HANDLE, DecryptionAuthorization, EncryptedInput, EphemeralKeypair, is_zero_handle
from .service import EncryptionService, HandleContractPair

logger = logging.getLogger(__name__)


class InputProofRejected(ValueError):
    """Proof does not match the handle, contract or account, or was already used."""


@dataclass(frozen=True)
class _IssuedInput:
    contract_address: str
    account: str
    handles: Tuple[bytes, ...]


class MockEncryptionService(EncryptionService):
    """Deterministic stand-in for the encryption relayer."""

    name = "mock"

    def __init__(
        self,
        *,
        init_delay_seconds: float = 0.0,
        latency_seconds: float = 0.0,
        domain: Optional[Dict[str, Any]] = None,
    ):
        self.init_delay_seconds = init_delay_seconds
        self.latency_seconds = latency_seconds
        self._domain = domain or build_domain()
        self._ready = False
        self._proof_key = os.urandom(32)
        self._values: Dict[bytes, int] = {}
        self._acl: Dict[bytes, Set[str]] = {}
        self._issued: Dict[bytes, _IssuedInput] = {}
        self._consumed: Set[bytes] = set()
        self.decrypt_calls = 0
        self.encrypt_calls = 0

    def domain(self) -> Dict[str, Any]:
        return self._domain

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        if self._ready:
            return
        if self.init_delay_seconds:
            await asyncio.sleep(self.init_delay_seconds)
        self._ready = True
        logger.info("Mock encryption service ready")

    async def _simulate_latency(self) -> None:
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

    # =========================================================================
    # Handle registry (the ledger's view of homomorphic values)
    # =========================================================================

    def _new_handle(self) -> bytes:
        while True:
            handle = os.urandom(32)
            if handle != ZERO_HANDLE and handle not in self._values:
                return handle

    def register_value(self, value: int, allowed: Iterable[str] = ()) -> bytes:
        """Store a computed value under a fresh handle and grant decrypt access."""
        handle = self._new_handle()
        self._values[handle] = value
        self._acl[handle] = {a.lower() for a in allowed}
        return handle

    def plaintext_of(self, handle: bytes) -> int:
        if is_zero_handle(handle):
            return 0
        try:
            return self._values[handle]
        except KeyError:
            raise KeyError(f"Unknown handle {handle.hex()}") from None

    # =========================================================================
    # Encrypted inputs
    # =========================================================================

    def _mac(self, contract_address: str, account: str, handles: Sequence[bytes]) -> bytes:
        message = (
            bytes.fromhex(contract_address[2:].lower())
            + bytes.fromhex(account[2:].lower())
            + b"".join(handles)
        )
        return hmac.new(self._proof_key, message, hashlib.sha256).digest()

    async def encrypt(
        self,
        contract_address: str,
        account: str,
        values: Sequence[int],
        bit_width: int,
    ) -> EncryptedInput:
        if not self._ready:
            raise ServiceUnavailable()
        await self._simulate_latency()

        ceiling = 2 ** bit_width - 1
        for value in values:
            if not 0 <= value <= ceiling:
                raise ValueError(f"Value {value} does not fit in {bit_width} bits")

        contract_address = to_checksum_address(contract_address)
        account = to_checksum_address(account)
        handles = tuple(self.register_value(v, allowed=[contract_address, account]) for v in values)
        proof = bytes([len(handles)]) + self._mac(contract_address, account, handles)
        self._issued[proof] = _IssuedInput(contract_address, account, handles)
        self.encrypt_calls += 1

        return EncryptedInput(
            handles=handles,
            proof=proof,
            contract_address=contract_address,
            account=account,
        )

    def verify_and_consume_input(self, contract_address: str, account: str, handle: bytes, proof: bytes) -> int:
        """Check an input proof the way the confidential contract does, then burn it."""
        issued = self._issued.get(proof)
        if issued is None:
            raise InputProofRejected("Unknown input proof")
        if proof in self._consumed:
            raise InputProofRejected("Input proof already used")
        expected = bytes([len(issued.handles)]) + self._mac(contract_address, account, issued.handles)
        if not hmac.compare_digest(expected, proof):
            raise InputProofRejected("Input proof is bound to a different contract or account")
        if handle not in issued.handles:
            raise InputProofRejected("Handle is not covered by the input proof")

        self._consumed.add(proof)
        return self._values[handle]

    # =========================================================================
    # User decryption
    # =========================================================================

    def _recover_signer(self, authorization: DecryptionAuthorization) -> str:
        typed_data = build_user_decrypt_typed_data(
            authorization.public_key,
            authorization.contract_addresses,
            authorization.start_timestamp,
            authorization.duration_days,
            domain=self._domain,
        )
        return Account.recover_message(encode_typed_data(full_message=typed_data), signature=authorization.signature)

    async def user_decrypt(
        self,
        pairs: Sequence[HandleContractPair],
        authorization: DecryptionAuthorization,
        keypair: EphemeralKeypair,
    ) -> Dict[bytes, int]:
        if not self._ready:
            raise ServiceUnavailable()
        self.decrypt_calls += 1
        await self._simulate_latency()

        if not authorization.is_valid_at(time.time()):
            raise AuthorizationExpired("Decryption authorization is outside its validity window")

        try:
            signer = self._recover_signer(authorization)
        except Exception as exc:
            raise DecryptionFailed(f"Invalid authorization signature: {exc}") from exc
        if signer.lower() != authorization.user_address.lower():
            raise DecryptionFailed("Authorization was not signed by the requesting user")

        sealer = SealedBox(PublicKey(authorization.public_key))
        results: Dict[bytes, int] = {}
        for handle, contract in pairs:
            if not authorization.covers(contract):
                raise DecryptionFailed(f"Authorization does not cover contract {contract}")
            if handle not in self._values:
                raise DecryptionFailed(f"Unknown ciphertext handle {handle.hex()}")
            allowed = self._acl.get(handle, set())
            if authorization.user_address.lower() not in allowed or contract.lower() not in allowed:
                raise DecryptionFailed("User is not allowed to decrypt this handle")

            sealed = sealer.encrypt(self._values[handle].to_bytes(32, "big"))
            results[handle] = keypair.open_value(sealed)

        return results
