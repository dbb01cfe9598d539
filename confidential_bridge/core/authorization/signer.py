"""
Authorization Signer

Produces holder-signed, time-bounded decryption authorizations. The signing
step may wait on a human; it is bounded by a timeout and can be declined.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Iterable, Optional

from ...config import settings
from ..encryption.models import AuthorizationPayload, DecryptionAuthorization, EphemeralKeypair
from ..errors import ActionTimeoutError, AuthorizationDeclined, SignerUnavailable
from ..wallet import AccountSigner, SignatureRejected

if TYPE_CHECKING:
    from ..encryption.service import EncryptionService

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 65


class AuthorizationSigner:
    """Keypair generation, payload construction and signing for user decryption."""

    def __init__(
        self,
        service: "EncryptionService",
        duration_days: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.service = service
        self.duration_days = duration_days or settings.authorization_duration_days
        self.timeout_seconds = timeout_seconds or settings.signer_timeout_seconds

    def generate_keypair(self) -> EphemeralKeypair:
        return self.service.generate_keypair()

    def build_authorization(
        self,
        public_key: bytes,
        contract_addresses: Iterable[str],
        start_timestamp: Optional[int] = None,
        duration_days: Optional[int] = None,
    ) -> AuthorizationPayload:
        """Pure: same inputs, same payload."""
        if start_timestamp is None:
            start_timestamp = int(time.time())
        return self.service.build_authorization(
            public_key,
            contract_addresses,
            start_timestamp,
            duration_days or self.duration_days,
        )

    async def sign(
        self,
        payload: AuthorizationPayload,
        account_signer: Optional[AccountSigner],
    ) -> DecryptionAuthorization:
        if account_signer is None:
            raise SignerUnavailable()

        try:
            signature = await asyncio.wait_for(
                account_signer.sign_typed_data(payload.typed_data),
                self.timeout_seconds,
            )
        except SignatureRejected as exc:
            raise AuthorizationDeclined(details=str(exc) or None) from exc
        except asyncio.TimeoutError:
            raise ActionTimeoutError("authorization signature", self.timeout_seconds) from None

        if len(signature) != SIGNATURE_LENGTH:
            raise AuthorizationDeclined(
                f"Signer returned a {len(signature)}-byte signature, expected {SIGNATURE_LENGTH}"
            )

        logger.info(f"Decryption authorization signed by {account_signer.address}")
        return DecryptionAuthorization(
            public_key=payload.public_key,
            contract_addresses=payload.contract_addresses,
            start_timestamp=payload.start_timestamp,
            duration_days=payload.duration_days,
            signature=bytes(signature),
            user_address=account_signer.address,
        )
