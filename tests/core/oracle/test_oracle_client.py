"""
Tests for the Decryption Oracle Client

Unwrap submission, oracle request correlation and handle resolution.
"""

import time
from unittest.mock import AsyncMock

import pytest

from confidential_bridge.core.assets import AssetDescriptor
from confidential_bridge.core.authorization import AuthorizationSigner
from confidential_bridge.core.encryption import EncryptionClient, MockEncryptionService
from confidential_bridge.core.encryption.models import ZERO_HANDLE
from confidential_bridge.core.errors import (
    AuthorizationExpired,
    DecryptionFailed,
    OracleRequestNotFound,
    SettlementPending,
    ValidationError,
)
from confidential_bridge.core.ledger import LogEntry, MockLedger, TransactionReceipt, TransactionStatus
from confidential_bridge.core.oracle import DecryptionOracleClient, encode_decryption_request
from confidential_bridge.core.wallet import LocalAccountSigner


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def encryption(encryption_service: MockEncryptionService) -> EncryptionClient:
    return EncryptionClient(encryption_service)


@pytest.fixture
def authorization_signer(encryption_service: MockEncryptionService) -> AuthorizationSigner:
    return AuthorizationSigner(encryption_service)


async def wrapped_balance(ledger: MockLedger, asset: AssetDescriptor, signer: LocalAccountSigner, amount: int) -> bytes:
    """Mint, approve and wrap ``amount`` straight through the ledger."""
    for tx in (
        await ledger.mint(signer, asset, signer.address, amount),
        await ledger.approve(signer, asset, asset.confidential_address, amount),
        await ledger.wrap(signer, asset, signer.address, amount),
    ):
        await ledger.wait_for_receipt(tx, 1)
    return await ledger.confidential_balance_of(asset, signer.address)


async def authorize(
    authorization_signer: AuthorizationSigner,
    signer: LocalAccountSigner,
    contracts,
    start_timestamp=None,
    duration_days=None,
):
    keypair = authorization_signer.generate_keypair()
    payload = authorization_signer.build_authorization(keypair.public_key, contracts, start_timestamp, duration_days)
    return await authorization_signer.sign(payload, signer), keypair


# =============================================================================
# Resolution
# =============================================================================

class TestResolve:

    @pytest.mark.asyncio
    async def test_encrypted_value_round_trips(
        self, oracle, encryption, authorization_signer, signer, zama
    ):
        await encryption.wait_until_ready()
        encrypted = await encryption.create_input(zama.confidential_address, signer.address).add_uint64(42).encrypt()
        authorization, keypair = await authorize(authorization_signer, signer, [zama.confidential_address])

        values = await oracle.resolve([encrypted.handle], authorization, keypair)
        assert values == {encrypted.handle: 42}

    @pytest.mark.asyncio
    async def test_resolves_wrapped_balance(
        self, oracle, ledger, encryption_service, authorization_signer, signer, zama
    ):
        await encryption_service.initialize()
        handle = await wrapped_balance(ledger, zama, signer, 42)
        authorization, keypair = await authorize(authorization_signer, signer, [zama.confidential_address])

        values = await oracle.resolve([handle], authorization, keypair, zama.confidential_address)
        assert values[handle] == 42

    @pytest.mark.asyncio
    async def test_zero_handle_short_circuits(
        self, oracle, encryption_service, authorization_signer, signer, zama
    ):
        await encryption_service.initialize()
        authorization, keypair = await authorize(authorization_signer, signer, [zama.confidential_address])

        values = await oracle.resolve([ZERO_HANDLE], authorization, keypair)
        assert values == {ZERO_HANDLE: 0}
        assert encryption_service.decrypt_calls == 0

    @pytest.mark.asyncio
    async def test_expired_authorization(
        self, oracle, ledger, encryption_service, authorization_signer, signer, zama
    ):
        await encryption_service.initialize()
        handle = await wrapped_balance(ledger, zama, signer, 42)
        authorization, keypair = await authorize(
            authorization_signer, signer, [zama.confidential_address],
            start_timestamp=int(time.time()) - 3 * 86400, duration_days=1,
        )

        with pytest.raises(AuthorizationExpired):
            await oracle.resolve([handle], authorization, keypair)
        assert encryption_service.decrypt_calls == 0

    @pytest.mark.asyncio
    async def test_contract_not_covered(
        self, oracle, ledger, encryption_service, authorization_signer, signer, registry, zama
    ):
        await encryption_service.initialize()
        handle = await wrapped_balance(ledger, zama, signer, 42)
        usdc = registry.resolve("usdc")
        authorization, keypair = await authorize(authorization_signer, signer, [usdc.confidential_address])

        with pytest.raises(DecryptionFailed):
            await oracle.resolve([handle], authorization, keypair, zama.confidential_address)

    @pytest.mark.asyncio
    async def test_uncovered_contract_never_reaches_the_service(
        self, oracle, ledger, encryption_service, authorization_signer, signer, registry, zama, monkeypatch
    ):
        await encryption_service.initialize()
        handle = await wrapped_balance(ledger, zama, signer, 42)
        usdc = registry.resolve("usdc")
        authorization, keypair = await authorize(authorization_signer, signer, [usdc.confidential_address])
        user_decrypt = AsyncMock(return_value={handle: 42})
        monkeypatch.setattr(encryption_service, "user_decrypt", user_decrypt)

        with pytest.raises(DecryptionFailed) as exc_info:
            await oracle.resolve([handle], authorization, keypair, zama.confidential_address)

        assert exc_info.value.context.details["contract"] == zama.confidential_address
        user_decrypt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_holder_cannot_decrypt(
        self, oracle, ledger, encryption_service, authorization_signer, signer, other_signer, zama
    ):
        await encryption_service.initialize()
        handle = await wrapped_balance(ledger, zama, signer, 42)
        authorization, keypair = await authorize(authorization_signer, other_signer, [zama.confidential_address])

        with pytest.raises(DecryptionFailed):
            await oracle.resolve([handle], authorization, keypair, zama.confidential_address)


# =============================================================================
# Unwrap submission and correlation
# =============================================================================

class TestSubmitUnwrap:

    @pytest.mark.asyncio
    async def test_submit_and_correlate(
        self, oracle, ledger, encryption, signer, other_signer, zama
    ):
        await encryption.wait_until_ready()
        await wrapped_balance(ledger, zama, signer, 42)
        encrypted = await encryption.create_input(zama.confidential_address, signer.address).add_uint64(5).encrypt()

        tx = await oracle.submit_unwrap(signer, zama, signer.address, other_signer.address, encrypted)
        receipt = await ledger.wait_for_receipt(tx, 1)
        event = oracle.correlate(receipt, zama.confidential_address)

        assert event.contract_caller == zama.confidential_address
        assert len(event.handles) == 1
        assert event.request_id == 1
        assert await ledger.balance_of(zama, other_signer.address) == 5

    @pytest.mark.asyncio
    async def test_input_bound_to_other_account_rejected(
        self, oracle, ledger, encryption, signer, other_signer, zama
    ):
        await encryption.wait_until_ready()
        encrypted = await encryption.create_input(zama.confidential_address, other_signer.address).add_uint64(5).encrypt()

        with pytest.raises(ValidationError):
            await oracle.submit_unwrap(signer, zama, signer.address, signer.address, encrypted)
        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_input_is_never_replayed(self, oracle, ledger, encryption, signer, zama):
        await encryption.wait_until_ready()
        await wrapped_balance(ledger, zama, signer, 42)
        encrypted = await encryption.create_input(zama.confidential_address, signer.address).add_uint64(5).encrypt()

        await oracle.submit_unwrap(signer, zama, signer.address, signer.address, encrypted)
        submitted = len(ledger.submitted)
        with pytest.raises(ValidationError):
            await oracle.submit_unwrap(signer, zama, signer.address, signer.address, encrypted)
        assert len(ledger.submitted) == submitted

    @pytest.mark.asyncio
    async def test_submitted_proofs_are_tracked_up_to_a_limit(
        self, ledger, encryption_service, encryption, signer, zama
    ):
        oracle = DecryptionOracleClient(ledger, encryption_service, max_tracked_proofs=2)
        await encryption.wait_until_ready()
        await wrapped_balance(ledger, zama, signer, 42)

        proofs = []
        for _ in range(3):
            encrypted = await encryption.create_input(zama.confidential_address, signer.address).add_uint64(1).encrypt()
            await oracle.submit_unwrap(signer, zama, signer.address, signer.address, encrypted)
            proofs.append(encrypted.proof)

        assert len(oracle._used_proofs) == 2
        assert proofs[0] not in oracle._used_proofs
        assert list(oracle._used_proofs) == proofs[1:]

    def test_correlate_skips_other_callers(self, oracle, registry, zama):
        usdc = registry.resolve("usdc")
        logs = [
            LogEntry(address=zama.confidential_address, topics=("0x" + "00" * 32,), data="0x"),
            encode_decryption_request(
                "0x" + "99" * 20, 1, 10, [b"\x01" * 32], usdc.confidential_address, b"\x00" * 4, log_index=1
            ),
            encode_decryption_request(
                "0x" + "99" * 20, 2, 11, [b"\x02" * 32], zama.confidential_address, b"\x00" * 4, log_index=2
            ),
        ]
        receipt = TransactionReceipt(tx_hash="0xabc", status=TransactionStatus.CONFIRMED, logs=logs)

        assert oracle.correlate(receipt, zama.confidential_address).request_id == 11

    def test_correlate_not_found(self, oracle, zama):
        receipt = TransactionReceipt(tx_hash="0xabc", status=TransactionStatus.CONFIRMED, logs=[])
        with pytest.raises(OracleRequestNotFound):
            oracle.correlate(receipt, zama.confidential_address)


# =============================================================================
# Settlement
# =============================================================================

class TestAwaitSettlement:

    @pytest.mark.asyncio
    async def test_returns_new_handle(self, oracle, ledger, encryption_service, signer, zama):
        await encryption_service.initialize()
        handle = await wrapped_balance(ledger, zama, signer, 42)

        assert await oracle.await_settlement(zama, signer.address, ZERO_HANDLE) == handle

    @pytest.mark.asyncio
    async def test_times_out_as_pending(self, oracle, ledger, encryption_service, signer, zama):
        await encryption_service.initialize()
        handle = await wrapped_balance(ledger, zama, signer, 42)

        with pytest.raises(SettlementPending):
            await oracle.await_settlement(zama, signer.address, handle, timeout=0.05)
