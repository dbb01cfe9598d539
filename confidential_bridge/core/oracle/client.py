"""
Decryption Oracle Client

Submits unwrap requests, finds the oracle request each one triggers, and
resolves ciphertext handles to cleartext through a signed authorization.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Dict, Optional, Sequence

from ...config import settings
from ..assets import AssetDescriptor
from ..encryption.models import DecryptionAuthorization, EncryptedInput, EphemeralKeypair, is_zero_handle
from ..encryption.service import EncryptionService
from ..errors import (
    ActionTimeoutError,
    AuthorizationExpired,
    ConnectivityError,
    DecryptionFailed,
    OracleRequestNotFound,
    SettlementPending,
    ValidationError,
)
from ..ledger.base import LedgerGateway
from ..ledger.models import TransactionReceipt, TransactionReference
from ..wallet import AccountSigner
from .events import DecryptionRequestEvent, decode_decryption_request

logger = logging.getLogger(__name__)


class DecryptionOracleClient:
    """Unwrap submission, oracle request correlation and user decryption."""

    def __init__(
        self,
        ledger: LedgerGateway,
        service: EncryptionService,
        oracle_timeout_seconds: Optional[float] = None,
        settlement_timeout_seconds: Optional[float] = None,
        poll_interval_seconds: Optional[float] = None,
        max_tracked_proofs: int = 1024,
    ):
        self.ledger = ledger
        self.service = service
        self.oracle_timeout_seconds = oracle_timeout_seconds or settings.oracle_timeout_seconds
        self.settlement_timeout_seconds = settlement_timeout_seconds or settings.settlement_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds or settings.receipt_poll_interval_seconds
        self.max_tracked_proofs = max_tracked_proofs
        # Most recent proofs only; the contract rejects older replays on its own
        self._used_proofs: "OrderedDict[bytes, None]" = OrderedDict()

    async def submit_unwrap(
        self,
        sender: AccountSigner,
        asset: AssetDescriptor,
        from_address: str,
        to: str,
        encrypted_input: EncryptedInput,
    ) -> TransactionReference:
        """Broadcast ``unwrap`` with a fresh encrypted amount.

        The input must be bound to (confidential contract, sender) and is
        never accepted twice.
        """
        if not encrypted_input.is_bound_to(asset.confidential_address, sender.address):
            raise ValidationError(
                "Encrypted input is bound to a different contract or account",
                contract=encrypted_input.contract_address,
                account=encrypted_input.account,
            )
        if encrypted_input.proof in self._used_proofs:
            raise ValidationError("Encrypted input has already been submitted")

        self._used_proofs[encrypted_input.proof] = None
        while len(self._used_proofs) > self.max_tracked_proofs:
            self._used_proofs.popitem(last=False)
        return await self.ledger.unwrap(
            sender,
            asset,
            from_address,
            to,
            encrypted_input.handle,
            encrypted_input.proof,
        )

    def correlate(self, receipt: TransactionReceipt, expected_contract: str) -> DecryptionRequestEvent:
        """First DecryptionRequest in ``receipt`` raised by ``expected_contract``."""
        expected = expected_contract.lower()
        for log in receipt.logs:
            event = decode_decryption_request(log)
            if event is None:
                continue
            if event.contract_caller.lower() == expected:
                logger.info(
                    f"Correlated oracle request {event.request_id} (counter {event.counter}) "
                    f"to tx {receipt.tx_hash}"
                )
                return event

        raise OracleRequestNotFound(
            f"No DecryptionRequest from {expected_contract} in transaction {receipt.tx_hash}",
            tx_hash=receipt.tx_hash,
        )

    async def resolve(
        self,
        handles: Sequence[bytes],
        authorization: DecryptionAuthorization,
        keypair: EphemeralKeypair,
        contract_address: Optional[str] = None,
    ) -> Dict[bytes, int]:
        """Map each handle to its cleartext value.

        Zero handles resolve to 0 locally. Everything else goes to the oracle,
        bounded by the authorization's remaining validity.
        """
        results: Dict[bytes, int] = {}
        pending = []
        for handle in handles:
            if is_zero_handle(handle):
                results[handle] = 0
            elif handle not in pending:
                pending.append(handle)

        if not pending:
            return results

        contract = contract_address or authorization.contract_addresses[0]
        if not authorization.covers(contract):
            raise DecryptionFailed(
                f"Authorization does not cover contract {contract}",
                contract=contract,
            )
        now = time.time()
        if not authorization.is_valid_at(now):
            raise AuthorizationExpired("Decryption authorization is outside its validity window")

        timeout = min(self.oracle_timeout_seconds, authorization.remaining_seconds(now))
        try:
            resolved = await asyncio.wait_for(
                self.service.user_decrypt([(h, contract) for h in pending], authorization, keypair),
                timeout,
            )
        except asyncio.TimeoutError:
            if not authorization.is_valid_at():
                raise AuthorizationExpired("Authorization expired before the oracle answered") from None
            raise ActionTimeoutError("user decryption", timeout) from None

        for handle in pending:
            if handle not in resolved:
                raise DecryptionFailed(f"Oracle returned no value for handle 0x{handle.hex()}")
            results[handle] = resolved[handle]

        return results

    async def await_settlement(
        self,
        asset: AssetDescriptor,
        holder: str,
        previous_handle: bytes,
        timeout: Optional[float] = None,
    ) -> bytes:
        """Poll until the holder's confidential handle moves off ``previous_handle``."""
        timeout = timeout or self.settlement_timeout_seconds
        deadline = time.monotonic() + timeout

        while True:
            try:
                current = await self.ledger.confidential_balance_of(asset, holder)
            except ConnectivityError as exc:
                logger.warning(f"Settlement poll failed: {exc}")
            else:
                if current != previous_handle:
                    return current

            if time.monotonic() >= deadline:
                raise SettlementPending(
                    f"Oracle has not settled the unwrap for {holder} after {timeout:g}s",
                    asset=asset.key,
                )
            await asyncio.sleep(self.poll_interval_seconds)
