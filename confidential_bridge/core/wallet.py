"""
Signer capabilities.

The orchestrator never reaches for an ambient wallet: a ``SignerProvider`` is
injected and asked for the bound ``AccountSigner`` when an action needs one.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

from eth_account import Account
from eth_account.messages import encode_typed_data

from ..config import settings

logger = logging.getLogger(__name__)


class SignatureRejected(Exception):
    """Raised by interactive signers when the holder refuses a signature request."""


class AccountSigner(ABC):
    """Key material of one account."""

    address: str

    @abstractmethod
    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        """Sign an EIP-712 payload and return the 65-byte signature."""

    @abstractmethod
    async def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        """Sign a transaction dict and return the raw signed transaction."""


class LocalAccountSigner(AccountSigner):
    """Signs with a private key held in-process (CLI / server use)."""

    def __init__(self, private_key: Union[str, bytes]):
        self._account = Account.from_key(private_key)
        self.address = self._account.address

    @classmethod
    def create(cls) -> "LocalAccountSigner":
        """Fresh random account, used by tests and mock mode."""
        return cls(Account.create().key)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        signable = encode_typed_data(full_message=typed_data)
        signed = self._account.sign_message(signable)
        return bytes(signed.signature)

    async def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        signed = self._account.sign_transaction(tx)
        return bytes(signed.raw_transaction)

    def __repr__(self) -> str:
        return f"LocalAccountSigner({self.address})"


class SignerProvider(ABC):
    """Hands out the currently bound signer, if any."""

    @abstractmethod
    async def get_signer(self) -> Optional[AccountSigner]:
        pass


class StaticSignerProvider(SignerProvider):
    """Provider bound to a fixed signer (or to none)."""

    def __init__(self, signer: Optional[AccountSigner] = None):
        self._signer = signer

    async def get_signer(self) -> Optional[AccountSigner]:
        return self._signer


def signer_provider_from_settings() -> StaticSignerProvider:
    """Bind the configured private key, or nothing when none is configured."""
    if not settings.has_signer_key:
        logger.warning("No signer key configured; actions that need a signature will fail")
        return StaticSignerProvider()
    return StaticSignerProvider(LocalAccountSigner(settings.signer_private_key))
