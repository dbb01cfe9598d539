"""
In-process ledger.

Simulates, for every registered asset, an ERC20 underlying token and its
ERC7984-style confidential wrapper:

- ``wrap`` pulls approved underlying into the wrapper and credits a fresh
  confidential handle
- ``unwrap`` verifies and burns the encrypted input proof, debits the
  confidential balance (nothing is burned if it is insufficient) and emits a
  ``DecryptionRequest`` for the burnt amount
- the oracle releases the underlying to the recipient when the request is
  fulfilled (immediately with ``auto_fulfill``)

Transactions execute at submission; ``wait_for_receipt`` only reports them.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from eth_utils import keccak, to_checksum_address

from ..abi import event_topic, hex_to_bytes, selector, to_hex
from ..assets import AssetDescriptor, AssetRegistry
from ..encryption.mock import InputProofRejected, MockEncryptionService
from ..encryption.models import ZERO_HANDLE
from ..errors import ActionTimeoutError, ConnectivityError, TransactionRevertedError
from ..oracle.events import encode_decryption_request
from ..wallet import AccountSigner
from .base import LedgerGateway
from .models import LedgerAction, LogEntry, TransactionReceipt, TransactionReference, TransactionStatus

logger = logging.getLogger(__name__)

CONFIDENTIAL_TRANSFER_TOPIC = event_topic("ConfidentialTransfer(address,address,bytes32)")
FINALIZE_UNWRAP_SELECTOR = hex_to_bytes(selector("finalizeUnwrap(uint256,bytes,bytes)"))


@dataclass
class PendingUnwrap:
    request_id: int
    asset: AssetDescriptor
    recipient: str
    amount_handle: bytes


def _topic_address(address: str) -> str:
    return "0x" + address[2:].lower().rjust(64, "0")


class MockLedger(LedgerGateway):
    """Deterministic ledger for tests and offline mode."""

    name = "mock"

    def __init__(
        self,
        encryption: MockEncryptionService,
        auto_fulfill: bool = True,
        latency_seconds: float = 0.0,
    ):
        self.encryption = encryption
        self.auto_fulfill = auto_fulfill
        self.latency_seconds = latency_seconds
        self.available = True

        self._balances: Dict[Tuple[str, str], int] = {}
        self._allowances: Dict[Tuple[str, str, str], int] = {}
        self._handles: Dict[Tuple[str, str], bytes] = {}
        self._receipts: Dict[str, TransactionReceipt] = {}
        self._failures: Dict[LedgerAction, str] = {}
        self._pending: List[PendingUnwrap] = []
        self._tx_count = 0
        self._request_counter = 0

        self.submitted: List[TransactionReference] = []
        self.journal: List[Tuple[str, LedgerAction, str]] = []

    # =========================================================================
    # Setup and test controls
    # =========================================================================

    @staticmethod
    def derive_address(label: str) -> str:
        return to_checksum_address(keccak(text=label)[-20:])

    def deploy(self, registry: AssetRegistry) -> AssetRegistry:
        """Give every asset deterministic contract addresses."""
        addresses: Mapping[str, Tuple[str, str]] = {
            asset.key: (
                self.derive_address(f"underlying:{asset.key}"),
                self.derive_address(f"confidential:{asset.key}"),
            )
            for asset in registry
        }
        logger.info(f"Mock ledger deployed {len(addresses)} asset pairs")
        return registry.with_addresses(addresses)

    def fail_next(self, action: LedgerAction, reason: str = "execution reverted") -> None:
        """Make the next ``action`` transaction revert."""
        self._failures[action] = reason

    def set_available(self, available: bool) -> None:
        self.available = available

    def fulfill_pending(self) -> int:
        """Act as the oracle: release underlying for every pending unwrap."""
        count = 0
        while self._pending:
            request = self._pending.pop(0)
            amount = self.encryption.plaintext_of(request.amount_handle)
            asset = request.asset
            self._move(asset.underlying_address, asset.confidential_address, request.recipient, amount)
            logger.info(f"Oracle fulfilled request {request.request_id}: {amount} to {request.recipient}")
            count += 1
        return count

    # =========================================================================
    # Internal bookkeeping
    # =========================================================================

    def _check_available(self) -> None:
        if not self.available:
            raise ConnectivityError("Mock ledger is unavailable")

    def _balance(self, token: str, holder: str) -> int:
        return self._balances.get((token.lower(), holder.lower()), 0)

    def _move(self, token: str, from_address: str, to: str, amount: int) -> None:
        self._balances[(token.lower(), from_address.lower())] = self._balance(token, from_address) - amount
        self._balances[(token.lower(), to.lower())] = self._balance(token, to) + amount

    def _handle(self, asset: AssetDescriptor, holder: str) -> bytes:
        return self._handles.get((asset.confidential_address.lower(), holder.lower()), ZERO_HANDLE)

    def _set_handle(self, asset: AssetDescriptor, holder: str, value: int) -> bytes:
        handle = self.encryption.register_value(value, allowed=[holder, asset.confidential_address])
        self._handles[(asset.confidential_address.lower(), holder.lower())] = handle
        return handle

    def _record(
        self,
        sender: AccountSigner,
        action: LedgerAction,
        contract: str,
        revert_reason: Optional[str] = None,
        logs: Optional[List[LogEntry]] = None,
    ) -> TransactionReference:
        self._tx_count += 1
        tx_hash = to_hex(keccak(text=f"mock-tx-{self._tx_count}"))
        reason = self._failures.pop(action, None) or revert_reason

        tx = TransactionReference(
            tx_hash=tx_hash,
            action=action,
            contract_address=contract,
            from_address=sender.address,
            nonce=self._tx_count - 1,
        )
        self._receipts[tx_hash] = TransactionReceipt(
            tx_hash=tx_hash,
            status=TransactionStatus.REVERTED if reason else TransactionStatus.CONFIRMED,
            block_number=self._tx_count,
            gas_used=21000,
            logs=[] if reason else list(logs or []),
            revert_reason=reason,
        )
        self.submitted.append(tx)
        self.journal.append(("submit", action, tx_hash))
        return tx

    def _will_fail(self, action: LedgerAction) -> bool:
        return action in self._failures

    # =========================================================================
    # LedgerGateway
    # =========================================================================

    async def ready(self) -> bool:
        return self.available

    async def health_check(self):
        return {"status": "healthy" if self.available else "unavailable", "backend": self.name}

    async def balance_of(self, asset: AssetDescriptor, holder: str) -> int:
        self._check_available()
        return self._balance(asset.underlying_address, holder)

    async def confidential_balance_of(self, asset: AssetDescriptor, holder: str) -> bytes:
        self._check_available()
        return self._handle(asset, holder)

    async def mint(self, sender: AccountSigner, asset: AssetDescriptor, to: str, amount: int) -> TransactionReference:
        self._check_available()
        if not self._will_fail(LedgerAction.MINT):
            key = (asset.underlying_address.lower(), to.lower())
            self._balances[key] = self._balances.get(key, 0) + amount
        return self._record(sender, LedgerAction.MINT, asset.underlying_address)

    async def approve(self, sender: AccountSigner, asset: AssetDescriptor, spender: str, amount: int) -> TransactionReference:
        self._check_available()
        if not self._will_fail(LedgerAction.APPROVE):
            key = (asset.underlying_address.lower(), sender.address.lower(), spender.lower())
            self._allowances[key] = amount
        return self._record(sender, LedgerAction.APPROVE, asset.underlying_address)

    async def wrap(self, sender: AccountSigner, asset: AssetDescriptor, to: str, amount: int) -> TransactionReference:
        self._check_available()
        if self._will_fail(LedgerAction.WRAP):
            return self._record(sender, LedgerAction.WRAP, asset.confidential_address)

        token = asset.underlying_address
        allowance_key = (token.lower(), sender.address.lower(), asset.confidential_address.lower())
        allowance = self._allowances.get(allowance_key, 0)
        if allowance < amount:
            return self._record(sender, LedgerAction.WRAP, asset.confidential_address, "ERC20InsufficientAllowance")
        if self._balance(token, sender.address) < amount:
            return self._record(sender, LedgerAction.WRAP, asset.confidential_address, "ERC20InsufficientBalance")

        self._allowances[allowance_key] = allowance - amount
        self._move(token, sender.address, asset.confidential_address, amount)
        current = self.encryption.plaintext_of(self._handle(asset, to))
        handle = self._set_handle(asset, to, current + amount)

        log = LogEntry(
            address=asset.confidential_address,
            topics=(CONFIDENTIAL_TRANSFER_TOPIC, _topic_address("0x" + "00" * 20), _topic_address(to)),
            data=to_hex(handle),
        )
        return self._record(sender, LedgerAction.WRAP, asset.confidential_address, logs=[log])

    async def unwrap(
        self,
        sender: AccountSigner,
        asset: AssetDescriptor,
        from_address: str,
        to: str,
        handle: bytes,
        proof: bytes,
    ) -> TransactionReference:
        self._check_available()
        contract = asset.confidential_address
        if self._will_fail(LedgerAction.UNWRAP):
            return self._record(sender, LedgerAction.UNWRAP, contract)
        if from_address.lower() != sender.address.lower():
            return self._record(sender, LedgerAction.UNWRAP, contract, "ERC7984UnauthorizedSpender")

        try:
            requested = self.encryption.verify_and_consume_input(contract, sender.address, handle, proof)
        except InputProofRejected as exc:
            return self._record(sender, LedgerAction.UNWRAP, contract, f"InvalidInputProof: {exc}")

        balance = self.encryption.plaintext_of(self._handle(asset, from_address))
        burned = requested if requested <= balance else 0
        new_handle = self._set_handle(asset, from_address, balance - burned)
        amount_handle = self.encryption.register_value(burned, allowed=[contract])

        self._request_counter += 1
        request_id = self._request_counter
        logs = [
            LogEntry(
                address=contract,
                topics=(CONFIDENTIAL_TRANSFER_TOPIC, _topic_address(from_address), _topic_address("0x" + "00" * 20)),
                data=to_hex(new_handle),
                log_index=0,
            ),
            encode_decryption_request(
                emitter=self.derive_address("decryption-oracle"),
                counter=request_id,
                request_id=request_id,
                handles=[amount_handle],
                contract_caller=contract,
                callback_selector=FINALIZE_UNWRAP_SELECTOR,
                log_index=1,
            ),
        ]
        tx = self._record(sender, LedgerAction.UNWRAP, contract, logs=logs)

        self._pending.append(PendingUnwrap(request_id, asset, to, amount_handle))
        if self.auto_fulfill:
            self.fulfill_pending()
        return tx

    async def wait_for_receipt(self, tx: TransactionReference, timeout: float) -> TransactionReceipt:
        if self.latency_seconds:
            if self.latency_seconds > timeout:
                await asyncio.sleep(timeout)
                raise ActionTimeoutError(f"{tx.action.value} confirmation", timeout, tx_hash=tx.tx_hash)
            await asyncio.sleep(self.latency_seconds)

        receipt = self._receipts[tx.tx_hash]
        self.journal.append(("confirm", tx.action, tx.tx_hash))
        if not receipt.is_success:
            raise TransactionRevertedError(
                f"{tx.action.value} transaction {tx.tx_hash} reverted: {receipt.revert_reason}",
                tx_hash=tx.tx_hash,
                contract_address=tx.contract_address,
                function_name=tx.action.value,
                reason=receipt.revert_reason,
            )
        return receipt
