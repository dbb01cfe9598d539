"""
Encryption Client

Builds encrypted inputs scoped to a single (contract, account) pair. Each
builder collects cleartext values, then encrypts them once into handles plus
a proof that the confidential contract verifies.
"""

import asyncio
import logging
from typing import List, Optional

from eth_utils import to_checksum_address

from ...config import settings
from ..errors import ActionTimeoutError, RangeError, ServiceUnavailable, ValidationError
from .models import EncryptedInput
from .service import EncryptionService

logger = logging.getLogger(__name__)


def check_amount(value: int, ceiling: int, allow_zero: bool = True) -> int:
    """Raise RangeError unless ``value`` is an int in range."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Amount must be an integer, got {type(value).__name__}")
    floor = 0 if allow_zero else 1
    if value < floor or value > ceiling:
        raise RangeError(value, ceiling)
    return value


class EncryptedInputBuilder:
    """Collects values for one encrypted input. Encrypts at most once."""

    def __init__(self, client: "EncryptionClient", contract_address: str, account: str):
        self._client = client
        self.contract_address = to_checksum_address(contract_address)
        self.account = to_checksum_address(account)
        self._values: List[int] = []
        self._encrypted = False

    @property
    def values(self) -> List[int]:
        return list(self._values)

    def add_uint64(self, value: int) -> "EncryptedInputBuilder":
        if self._encrypted:
            raise ValidationError("Encrypted input has already been produced")
        self._values.append(check_amount(value, self._client.ceiling))
        return self

    async def encrypt(self) -> EncryptedInput:
        if self._encrypted:
            raise ValidationError("Encrypted input has already been produced")
        if not self._values:
            raise ValidationError("Nothing to encrypt; add a value first")

        self._encrypted = True
        return await self._client._encrypt(self)


class EncryptionClient:
    """Front door to the encryption service for the orchestrator."""

    def __init__(
        self,
        service: EncryptionService,
        bit_width: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.service = service
        self.bit_width = bit_width or settings.ciphertext_bit_width
        self.timeout_seconds = timeout_seconds or settings.encryption_timeout_seconds

    @property
    def ceiling(self) -> int:
        return 2 ** self.bit_width - 1

    @property
    def is_ready(self) -> bool:
        return self.service.is_ready

    async def wait_until_ready(self, timeout: Optional[float] = None) -> None:
        """Initialize the backend, giving up after ``timeout`` seconds."""
        if self.service.is_ready:
            return
        timeout = timeout or settings.encryption_init_timeout_seconds
        try:
            await asyncio.wait_for(self.service.initialize(), timeout)
        except asyncio.TimeoutError:
            raise ServiceUnavailable(f"Encryption service not ready after {timeout:g}s") from None

    def create_input(self, contract_address: str, account: str) -> EncryptedInputBuilder:
        if not self.service.is_ready:
            raise ServiceUnavailable()
        return EncryptedInputBuilder(self, contract_address, account)

    async def _encrypt(self, builder: EncryptedInputBuilder) -> EncryptedInput:
        if not self.service.is_ready:
            raise ServiceUnavailable()

        try:
            encrypted = await asyncio.wait_for(
                self.service.encrypt(builder.contract_address, builder.account, builder.values, self.bit_width),
                self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise ActionTimeoutError("encrypt", self.timeout_seconds) from None
        except (KeyError, TypeError, ValueError) as exc:
            raise ServiceUnavailable(f"Malformed reply from the encryption service: {exc!r}") from exc

        if len(encrypted.handles) != len(builder.values):
            raise ServiceUnavailable(
                f"Encryption service returned {len(encrypted.handles)} handles for {len(builder.values)} values"
            )
        if not encrypted.is_bound_to(builder.contract_address, builder.account):
            raise ServiceUnavailable("Encryption service bound the input to a different contract or account")

        logger.debug(f"Encrypted {len(builder.values)} value(s) for {builder.contract_address}/{builder.account}")
        return encrypted
