from abc import ABC, abstractmethod
from typing import Any, Dict

from ..assets import AssetDescriptor
from ..wallet import AccountSigner
from .models import TransactionReceipt, TransactionReference


class LedgerGateway(ABC):
    """The asset contracts, seen from the bridge.

    Reads are plain queries. Writes broadcast a transaction signed by
    ``sender`` and return a reference that must be confirmed with
    ``wait_for_receipt`` before the caller advances.
    """

    name: str

    @abstractmethod
    async def ready(self) -> bool:
        """Check if the ledger is reachable"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return ledger health status"""
        pass

    # Reads

    @abstractmethod
    async def balance_of(self, asset: AssetDescriptor, holder: str) -> int:
        """Underlying (plaintext) balance in base units"""
        pass

    @abstractmethod
    async def confidential_balance_of(self, asset: AssetDescriptor, holder: str) -> bytes:
        """32-byte ciphertext handle of the confidential balance"""
        pass

    # Writes

    @abstractmethod
    async def mint(self, sender: AccountSigner, asset: AssetDescriptor, to: str, amount: int) -> TransactionReference:
        pass

    @abstractmethod
    async def approve(self, sender: AccountSigner, asset: AssetDescriptor, spender: str, amount: int) -> TransactionReference:
        """Approve ``spender`` on the underlying token"""
        pass

    @abstractmethod
    async def wrap(self, sender: AccountSigner, asset: AssetDescriptor, to: str, amount: int) -> TransactionReference:
        pass

    @abstractmethod
    async def unwrap(
        self,
        sender: AccountSigner,
        asset: AssetDescriptor,
        from_address: str,
        to: str,
        handle: bytes,
        proof: bytes,
    ) -> TransactionReference:
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx: TransactionReference, timeout: float) -> TransactionReceipt:
        """Block until ``tx`` is mined.

        Raises TransactionRevertedError on revert and ActionTimeoutError when
        the wait is abandoned.
        """
        pass

    async def close(self) -> None:
        pass
