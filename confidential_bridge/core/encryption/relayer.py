"""Async client for the encryption relayer (input proofs and user decryption)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

import httpx
from nacl.exceptions import CryptoError

from ...config import settings
from ..abi import hex_to_bytes, to_hex
from ..errors import (
    AuthorizationExpired,
    ConnectivityError,
    DecryptionFailed,
    ServiceUnavailable,
)
from .models import DecryptionAuthorization, EncryptedInput, EphemeralKeypair
from .service import EncryptionService, HandleContractPair

logger = logging.getLogger(__name__)


class RelayerEncryptionService(EncryptionService):
    """Thin wrapper around the relayer HTTP endpoints."""

    name = "relayer"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        contracts_chain_id: Optional[int] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or settings.relayer_url).rstrip("/")
        self.contracts_chain_id = contracts_chain_id or settings.chain_id
        self.timeout_s = timeout_s or settings.rpc_timeout_seconds
        self._key_info: Optional[Dict[str, Any]] = None
        self._init_lock = asyncio.Lock()

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": "ConfidentialBridge/1.0",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout_s) as client:
                response = await client.request(method, path, json=json, headers=self._headers())
                response.raise_for_status()
        except httpx.RequestError as exc:
            raise ConnectivityError(f"Relayer {path} unreachable: {exc}", path=path) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ConnectivityError(f"Relayer {path} returned a malformed reply", path=path) from exc
        if not isinstance(body, dict):
            raise ConnectivityError(f"Relayer {path} returned a malformed reply", path=path)
        return body

    @property
    def is_ready(self) -> bool:
        return self._key_info is not None

    async def initialize(self) -> None:
        async with self._init_lock:
            if self._key_info is not None:
                return
            try:
                self._key_info = await self._request("GET", "/v1/keyurl")
            except httpx.HTTPStatusError as exc:
                raise ServiceUnavailable(
                    f"Relayer key material unavailable ({exc.response.status_code})"
                ) from exc
            logger.info(f"Encryption relayer ready at {self.base_url}")

    async def encrypt(
        self,
        contract_address: str,
        account: str,
        values: Sequence[int],
        bit_width: int,
    ) -> EncryptedInput:
        if not self.is_ready:
            raise ServiceUnavailable()

        payload = {
            "contractAddress": contract_address,
            "userAddress": account,
            "contractChainId": self.contracts_chain_id,
            "values": [str(v) for v in values],
            "bitWidth": bit_width,
        }
        try:
            body = await self._request("POST", "/v1/input-proof", json=payload)
        except httpx.HTTPStatusError as exc:
            raise ServiceUnavailable(
                f"Relayer rejected input proof request ({exc.response.status_code})"
            ) from exc

        try:
            handles = tuple(hex_to_bytes(h) for h in body["handles"])
            proof = hex_to_bytes(body["inputProof"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ServiceUnavailable(f"Malformed input proof reply: {exc!r}") from exc

        return EncryptedInput(
            handles=handles,
            proof=proof,
            contract_address=contract_address,
            account=account,
        )

    async def user_decrypt(
        self,
        pairs: Sequence[HandleContractPair],
        authorization: DecryptionAuthorization,
        keypair: EphemeralKeypair,
    ) -> Dict[bytes, int]:
        if not self.is_ready:
            raise ServiceUnavailable()

        payload = {
            "handleContractPairs": [
                {"handle": to_hex(handle), "contractAddress": contract}
                for handle, contract in pairs
            ],
            "requestValidity": {
                "startTimestamp": str(authorization.start_timestamp),
                "durationDays": str(authorization.duration_days),
            },
            "contractsChainId": str(self.contracts_chain_id),
            "contractAddresses": list(authorization.contract_addresses),
            "userAddress": authorization.user_address,
            "signature": to_hex(authorization.signature)[2:],
            "publicKey": to_hex(authorization.public_key)[2:],
        }
        try:
            body = await self._request("POST", "/v1/user-decrypt", json=payload)
        except httpx.HTTPStatusError as exc:
            text = exc.response.text.lower()
            if "expired" in text:
                raise AuthorizationExpired("Relayer reports the authorization has expired") from exc
            raise DecryptionFailed(
                f"User decryption rejected ({exc.response.status_code})",
                status=exc.response.status_code,
            ) from exc

        results: Dict[bytes, int] = {}
        for item in body.get("response") or []:
            try:
                handle = hex_to_bytes(item["handle"])
                results[handle] = keypair.open_value(hex_to_bytes(item["payload"]))
            except (KeyError, TypeError, ValueError, CryptoError) as exc:
                raise DecryptionFailed(f"Malformed decryption reply: {exc}") from exc
        return results

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "ready" if self.is_ready else "initializing",
            "backend": self.name,
            "url": self.base_url,
        }
