"""
Tests for the Authorization Signer

EIP-712 payload construction and holder signatures for user decryption.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from confidential_bridge.core.authorization import PRIMARY_TYPE, SIGNATURE_LENGTH, AuthorizationSigner
from confidential_bridge.core.encryption import EphemeralKeypair, MockEncryptionService
from confidential_bridge.core.encryption.models import SECONDS_PER_DAY
from confidential_bridge.core.errors import ActionTimeoutError, AuthorizationDeclined, SignerUnavailable
from confidential_bridge.core.wallet import AccountSigner, LocalAccountSigner, SignatureRejected

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
START = 1_700_000_000


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def authorization_signer(encryption_service: MockEncryptionService) -> AuthorizationSigner:
    return AuthorizationSigner(encryption_service, duration_days=7, timeout_seconds=1)


@pytest.fixture
def keypair() -> EphemeralKeypair:
    return EphemeralKeypair.generate()


def stub_signer(sign: AsyncMock) -> AccountSigner:
    signer = MagicMock(spec=AccountSigner)
    signer.address = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
    signer.sign_typed_data = sign
    return signer


# =============================================================================
# Payload
# =============================================================================

class TestBuildAuthorization:

    def test_typed_data_shape(self, authorization_signer: AuthorizationSigner, keypair: EphemeralKeypair):
        payload = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START)
        typed_data = payload.typed_data

        assert typed_data["primaryType"] == PRIMARY_TYPE == "UserDecryptRequestVerification"
        assert [f["name"] for f in typed_data["types"][PRIMARY_TYPE]] == [
            "publicKey",
            "contractAddresses",
            "startTimestamp",
            "durationDays",
        ]
        assert typed_data["message"] == {
            "publicKey": "0x" + keypair.public_key.hex(),
            "contractAddresses": [CONTRACT],
            "startTimestamp": START,
            "durationDays": 7,
        }
        assert set(typed_data["domain"]) == {"name", "version", "chainId", "verifyingContract"}

    def test_payload_is_pure(self, authorization_signer: AuthorizationSigner, keypair: EphemeralKeypair):
        first = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START)
        second = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START)
        assert first == second

    def test_contracts_are_deduplicated(self, authorization_signer: AuthorizationSigner, keypair: EphemeralKeypair):
        payload = authorization_signer.build_authorization(
            keypair.public_key, [CONTRACT.lower(), CONTRACT], START
        )
        assert payload.contract_addresses == (CONTRACT,)

    def test_expiry(self, authorization_signer: AuthorizationSigner, keypair: EphemeralKeypair):
        payload = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START, duration_days=2)
        assert payload.expires_at == START + 2 * SECONDS_PER_DAY


# =============================================================================
# Signing
# =============================================================================

class TestSign:

    @pytest.mark.asyncio
    async def test_signature_recovers_to_holder(
        self,
        authorization_signer: AuthorizationSigner,
        keypair: EphemeralKeypair,
        signer: LocalAccountSigner,
    ):
        payload = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START)
        authorization = await authorization_signer.sign(payload, signer)

        assert len(authorization.signature) == SIGNATURE_LENGTH
        assert authorization.user_address == signer.address
        assert authorization.public_key == keypair.public_key
        recovered = Account.recover_message(
            encode_typed_data(full_message=payload.typed_data),
            signature=authorization.signature,
        )
        assert recovered == signer.address

    @pytest.mark.asyncio
    async def test_validity_window(
        self,
        authorization_signer: AuthorizationSigner,
        keypair: EphemeralKeypair,
        signer: LocalAccountSigner,
    ):
        payload = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START, duration_days=1)
        authorization = await authorization_signer.sign(payload, signer)

        assert authorization.is_valid_at(START)
        assert authorization.is_valid_at(START + SECONDS_PER_DAY - 1)
        assert not authorization.is_valid_at(START + SECONDS_PER_DAY)
        assert not authorization.is_valid_at(START - 1)
        assert authorization.covers(CONTRACT.lower())

    @pytest.mark.asyncio
    async def test_no_signer(self, authorization_signer: AuthorizationSigner, keypair: EphemeralKeypair):
        payload = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START)
        with pytest.raises(SignerUnavailable):
            await authorization_signer.sign(payload, None)

    @pytest.mark.asyncio
    async def test_declined(self, authorization_signer: AuthorizationSigner, keypair: EphemeralKeypair):
        payload = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START)
        holder = stub_signer(AsyncMock(side_effect=SignatureRejected("User rejected the request")))

        with pytest.raises(AuthorizationDeclined) as exc_info:
            await authorization_signer.sign(payload, holder)
        assert exc_info.value.code == "AUTHORIZATION_DECLINED"

    @pytest.mark.asyncio
    async def test_malformed_signature(self, authorization_signer: AuthorizationSigner, keypair: EphemeralKeypair):
        payload = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START)
        holder = stub_signer(AsyncMock(return_value=b"\x01" * 64))

        with pytest.raises(AuthorizationDeclined, match="64-byte"):
            await authorization_signer.sign(payload, holder)

    @pytest.mark.asyncio
    async def test_signing_timeout(self, encryption_service: MockEncryptionService, keypair: EphemeralKeypair):
        authorization_signer = AuthorizationSigner(encryption_service, timeout_seconds=0.05)
        payload = authorization_signer.build_authorization(keypair.public_key, [CONTRACT], START)

        async def never_signs(typed_data):
            await asyncio.sleep(1)
            return b"\x00" * 65

        with pytest.raises(ActionTimeoutError):
            await authorization_signer.sign(payload, stub_signer(AsyncMock(side_effect=never_signs)))
