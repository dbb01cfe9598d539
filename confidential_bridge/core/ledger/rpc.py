"""
JSON-RPC ledger gateway.

Handles the lifecycle of a bridge transaction against a live EVM node:
- Nonce reservation
- Gas and EIP-1559 fee estimation
- Local signing and raw submission
- Receipt polling
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from eth_utils import keccak, to_checksum_address

from ...config import settings
from ..abi import hex_to_bytes, strip_0x, to_hex
from ..assets import AssetDescriptor
from ..errors import ActionTimeoutError, BroadcastUncertainError, ConnectivityError, TransactionRevertedError
from ..wallet import AccountSigner
from . import calls
from .base import LedgerGateway
from .models import (
    LedgerAction,
    LogEntry,
    PreparedTransaction,
    TransactionReceipt,
    TransactionReference,
    TransactionStatus,
)
from .nonce_manager import NonceManager

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_FEE_WEI = 1_000_000_000


class RpcError(ConnectivityError):
    """The node answered with a JSON-RPC error object."""

    code = "RPC_ERROR"


class JsonRpcLedger(LedgerGateway):
    """Talks to the asset contracts through a JSON-RPC endpoint."""

    name = "json-rpc"

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        chain_id: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self.rpc_url = rpc_url or settings.rpc_url
        self.chain_id = chain_id or settings.chain_id
        self._client = client or httpx.AsyncClient(timeout=settings.rpc_timeout_seconds)
        self._poll_interval = poll_interval_seconds or settings.receipt_poll_interval_seconds
        self.nonce_manager = NonceManager(self._fetch_pending_nonce)
        self._request_id = 0

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the node."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"RPC {method} failed: {exc}", method=method) from exc

        try:
            result = response.json()
        except ValueError as exc:
            raise ConnectivityError(f"RPC {method} returned a malformed reply", method=method) from exc
        if not isinstance(result, dict):
            raise ConnectivityError(f"RPC {method} returned a malformed reply", method=method)

        if "error" in result:
            error = result["error"] or {}
            message = str(error.get("message", error))
            if "revert" in message.lower():
                raise TransactionRevertedError(
                    f"{method} reverted: {message}",
                    reason=message,
                    function_name=method,
                )
            raise RpcError(f"RPC error: {message}", method=method)

        return result.get("result")

    async def _fetch_pending_nonce(self, address: str) -> int:
        nonce_hex = await self._rpc_call("eth_getTransactionCount", [address, "pending"])
        return int(nonce_hex, 16)

    async def _eth_call(self, to: str, data: str) -> str:
        return await self._rpc_call("eth_call", [{"to": to, "data": data}, "latest"])

    async def ready(self) -> bool:
        try:
            await self._rpc_call("eth_chainId", [])
            return True
        except ConnectivityError:
            return False

    async def health_check(self) -> Dict[str, Any]:
        started = time.monotonic()
        try:
            chain_hex = await self._rpc_call("eth_chainId", [])
            block_hex = await self._rpc_call("eth_blockNumber", [])
        except ConnectivityError as exc:
            return {"status": "unavailable", "error": str(exc)}

        reported_chain = int(chain_hex, 16)
        return {
            "status": "healthy" if reported_chain == self.chain_id else "degraded",
            "chain_id": reported_chain,
            "block_number": int(block_hex, 16),
            "latency_ms": round((time.monotonic() - started) * 1000, 1),
        }

    # =========================================================================
    # Reads
    # =========================================================================

    async def balance_of(self, asset: AssetDescriptor, holder: str) -> int:
        result = await self._eth_call(asset.underlying_address, calls.build_balance_of(holder))
        return int(strip_0x(result) or "0", 16)

    async def confidential_balance_of(self, asset: AssetDescriptor, holder: str) -> bytes:
        result = await self._eth_call(asset.confidential_address, calls.build_confidential_balance_of(holder))
        raw = hex_to_bytes(result)
        return raw[:32].rjust(32, b"\x00")

    # =========================================================================
    # Writes
    # =========================================================================

    async def mint(self, sender: AccountSigner, asset: AssetDescriptor, to: str, amount: int) -> TransactionReference:
        return await self._send(sender, LedgerAction.MINT, asset.underlying_address, calls.build_mint(to, amount))

    async def approve(self, sender: AccountSigner, asset: AssetDescriptor, spender: str, amount: int) -> TransactionReference:
        return await self._send(sender, LedgerAction.APPROVE, asset.underlying_address, calls.build_approve(spender, amount))

    async def wrap(self, sender: AccountSigner, asset: AssetDescriptor, to: str, amount: int) -> TransactionReference:
        return await self._send(sender, LedgerAction.WRAP, asset.confidential_address, calls.build_wrap(to, amount))

    async def unwrap(
        self,
        sender: AccountSigner,
        asset: AssetDescriptor,
        from_address: str,
        to: str,
        handle: bytes,
        proof: bytes,
    ) -> TransactionReference:
        data = calls.build_unwrap(from_address, to, handle, proof)
        return await self._send(sender, LedgerAction.UNWRAP, asset.confidential_address, data)

    async def _estimate_fees(self) -> Dict[str, int]:
        fee_history = await self._rpc_call("eth_feeHistory", [1, "latest", [50]])
        base_fee = int(fee_history["baseFeePerGas"][-1], 16)
        reward = fee_history.get("reward") or []
        priority_fee = int(reward[0][0], 16) if reward and reward[0] else DEFAULT_PRIORITY_FEE_WEI

        if settings.max_priority_fee_gwei:
            priority_fee = min(priority_fee, int(settings.max_priority_fee_gwei * 1e9))

        return {
            "max_fee_per_gas": base_fee * 2 + priority_fee,
            "max_priority_fee_per_gas": priority_fee,
        }

    async def _prepare(self, sender: AccountSigner, action: LedgerAction, to: str, data: str, nonce: int) -> PreparedTransaction:
        gas_hex = await self._rpc_call(
            "eth_estimateGas",
            [{"from": sender.address, "to": to, "data": data}],
        )
        fees = await self._estimate_fees()
        return PreparedTransaction(
            action=action,
            chain_id=self.chain_id,
            from_address=sender.address,
            to_address=to_checksum_address(to),
            data=data,
            nonce=nonce,
            gas_limit=int(int(gas_hex, 16) * settings.gas_multiplier),
            **fees,
        )

    async def _send(self, sender: AccountSigner, action: LedgerAction, to: str, data: str) -> TransactionReference:
        nonce = await self.nonce_manager.get_next_nonce(sender.address)
        try:
            tx = await self._prepare(sender, action, to, data, nonce)
            raw = await sender.sign_transaction(tx.to_signable())
        except BaseException:
            # Never broadcast; the nonce is free again
            await self.nonce_manager.release_nonce(sender.address, nonce)
            raise

        local_hash = to_hex(keccak(raw))
        try:
            tx_hash = await self._rpc_call("eth_sendRawTransaction", [to_hex(raw)])
        except (RpcError, TransactionRevertedError):
            # The node answered and refused it
            await self.nonce_manager.release_nonce(sender.address, nonce)
            raise
        except BaseException as exc:
            await self.nonce_manager.discard_nonce(sender.address, nonce)
            logger.warning(f"Broadcast of {action.value} {local_hash} (nonce {nonce}) has an unknown outcome: {exc!r}")
            if isinstance(exc, ConnectivityError):
                raise BroadcastUncertainError(
                    f"{action.value} submission lost: {exc}",
                    tx_hash=local_hash,
                    contract_address=to,
                    function_name=action.value,
                ) from exc
            raise

        logger.info(f"Transaction submitted: {action.value} {tx_hash} (nonce {nonce})")
        return TransactionReference(
            tx_hash=tx_hash,
            action=action,
            contract_address=to,
            from_address=sender.address,
            nonce=nonce,
        )

    async def wait_for_receipt(self, tx: TransactionReference, timeout: float) -> TransactionReceipt:
        deadline = time.monotonic() + timeout

        while True:
            try:
                raw = await self._rpc_call("eth_getTransactionReceipt", [tx.tx_hash])
            except ConnectivityError as exc:
                logger.warning(f"Error checking transaction status: {exc}")
                raw = None

            if raw:
                if tx.nonce is not None:
                    await self.nonce_manager.confirm_nonce(tx.from_address, tx.nonce)
                receipt = self._parse_receipt(raw)
                if not receipt.is_success:
                    raise TransactionRevertedError(
                        f"{tx.action.value} transaction {tx.tx_hash} reverted",
                        tx_hash=tx.tx_hash,
                        contract_address=tx.contract_address,
                        function_name=tx.action.value,
                    )
                logger.info(f"Transaction confirmed: {tx.tx_hash} (block {receipt.block_number})")
                return receipt

            if time.monotonic() >= deadline:
                raise ActionTimeoutError(f"{tx.action.value} confirmation", timeout, tx_hash=tx.tx_hash)

            await asyncio.sleep(self._poll_interval)

    @staticmethod
    def _parse_receipt(raw: Dict[str, Any]) -> TransactionReceipt:
        status = int(raw.get("status", "0x1"), 16)
        return TransactionReceipt(
            tx_hash=raw["transactionHash"],
            status=TransactionStatus.CONFIRMED if status == 1 else TransactionStatus.REVERTED,
            block_number=int(raw["blockNumber"], 16) if raw.get("blockNumber") else None,
            gas_used=int(raw["gasUsed"], 16) if raw.get("gasUsed") else None,
            logs=[LogEntry.from_rpc(entry) for entry in raw.get("logs") or []],
            confirmed_at=datetime.now(timezone.utc),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
