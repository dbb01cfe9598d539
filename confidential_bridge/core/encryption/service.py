from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Sequence, Tuple

from ..authorization.typed_data import build_user_decrypt_typed_data, normalize_contracts
from .models import AuthorizationPayload, DecryptionAuthorization, EncryptedInput, EphemeralKeypair

HandleContractPair = Tuple[bytes, str]


class EncryptionService(ABC):
    """Capability interface to the homomorphic-encryption backend.

    Produces encrypted inputs bound to a (contract, account) pair and
    resolves handles for holders who present a signed authorization.
    """

    name: str

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True once key material has been loaded"""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Load key material. Idempotent."""
        pass

    @abstractmethod
    async def encrypt(
        self,
        contract_address: str,
        account: str,
        values: Sequence[int],
        bit_width: int,
    ) -> EncryptedInput:
        pass

    @abstractmethod
    async def user_decrypt(
        self,
        pairs: Sequence[HandleContractPair],
        authorization: DecryptionAuthorization,
        keypair: EphemeralKeypair,
    ) -> Dict[bytes, int]:
        """Resolve handles to cleartext; replies are sealed to ``keypair``."""
        pass

    def generate_keypair(self) -> EphemeralKeypair:
        return EphemeralKeypair.generate()

    def build_authorization(
        self,
        public_key: bytes,
        contract_addresses: Iterable[str],
        start_timestamp: int,
        duration_days: int,
    ) -> AuthorizationPayload:
        contracts = normalize_contracts(contract_addresses)
        typed_data = build_user_decrypt_typed_data(
            public_key, contracts, start_timestamp, duration_days, domain=self.domain()
        )
        return AuthorizationPayload(
            typed_data=typed_data,
            public_key=public_key,
            contract_addresses=tuple(contracts),
            start_timestamp=int(start_timestamp),
            duration_days=int(duration_days),
        )

    def domain(self) -> Any:
        """EIP-712 domain override; None uses the configured one."""
        return None

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "ready" if self.is_ready else "initializing", "backend": self.name}

    async def close(self) -> None:
        pass
