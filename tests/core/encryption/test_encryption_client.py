"""
Tests for the Encryption Client

Range checks, single-use builders, readiness and binding of encrypted inputs.
"""

import pytest

from confidential_bridge.core.encryption import (
    EncryptionClient,
    EphemeralKeypair,
    MockEncryptionService,
    check_amount,
    short_handle,
)
from confidential_bridge.core.encryption.models import ZERO_HANDLE
from confidential_bridge.core.errors import (
    ActionTimeoutError,
    RangeError,
    ServiceUnavailable,
    ValidationError,
)

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
ACCOUNT = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
CEILING = 2**64 - 1


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def client(encryption_service: MockEncryptionService) -> EncryptionClient:
    return EncryptionClient(encryption_service, timeout_seconds=1)


# =============================================================================
# Range checks
# =============================================================================

class TestCheckAmount:

    def test_accepts_bounds(self):
        assert check_amount(0, CEILING) == 0
        assert check_amount(CEILING, CEILING) == CEILING

    def test_rejects_above_ceiling(self):
        with pytest.raises(RangeError) as exc_info:
            check_amount(2**64, CEILING)
        assert exc_info.value.code == "AMOUNT_OUT_OF_RANGE"

    def test_rejects_negative(self):
        with pytest.raises(RangeError):
            check_amount(-1, CEILING)

    def test_zero_rejected_when_disallowed(self):
        with pytest.raises(RangeError):
            check_amount(0, CEILING, allow_zero=False)

    @pytest.mark.parametrize("value", [1.5, "10", True, None])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValidationError):
            check_amount(value, CEILING)


# =============================================================================
# Builder
# =============================================================================

class TestEncryptedInputBuilder:

    def test_create_input_requires_ready_service(self, client: EncryptionClient):
        with pytest.raises(ServiceUnavailable):
            client.create_input(CONTRACT, ACCOUNT)

    @pytest.mark.asyncio
    async def test_encrypt_binds_contract_and_account(self, client: EncryptionClient):
        await client.wait_until_ready()
        encrypted = await client.create_input(CONTRACT, ACCOUNT).add_uint64(5).encrypt()

        assert len(encrypted.handles) == 1
        assert len(encrypted.handle) == 32
        assert encrypted.handle != ZERO_HANDLE
        assert encrypted.proof
        assert encrypted.is_bound_to(CONTRACT, ACCOUNT)
        assert encrypted.is_bound_to(CONTRACT.lower(), ACCOUNT.lower())

    @pytest.mark.asyncio
    async def test_same_value_encrypts_differently(self, client: EncryptionClient):
        await client.wait_until_ready()
        first = await client.create_input(CONTRACT, ACCOUNT).add_uint64(5).encrypt()
        second = await client.create_input(CONTRACT, ACCOUNT).add_uint64(5).encrypt()

        assert first.handle != second.handle
        assert first.proof != second.proof

    @pytest.mark.asyncio
    async def test_encrypt_is_single_use(self, client: EncryptionClient):
        await client.wait_until_ready()
        builder = client.create_input(CONTRACT, ACCOUNT).add_uint64(5)
        await builder.encrypt()

        with pytest.raises(ValidationError):
            await builder.encrypt()
        with pytest.raises(ValidationError):
            builder.add_uint64(1)

    @pytest.mark.asyncio
    async def test_empty_builder_rejected(self, client: EncryptionClient, encryption_service):
        await client.wait_until_ready()
        with pytest.raises(ValidationError):
            await client.create_input(CONTRACT, ACCOUNT).encrypt()
        assert encryption_service.encrypt_calls == 0

    @pytest.mark.asyncio
    async def test_out_of_range_never_reaches_service(self, client: EncryptionClient, encryption_service):
        await client.wait_until_ready()
        builder = client.create_input(CONTRACT, ACCOUNT)

        with pytest.raises(RangeError):
            builder.add_uint64(2**64)
        assert builder.values == []
        assert encryption_service.encrypt_calls == 0

    @pytest.mark.asyncio
    async def test_configurable_bit_width(self, encryption_service: MockEncryptionService):
        client = EncryptionClient(encryption_service, bit_width=8)
        await client.wait_until_ready()

        assert client.ceiling == 255
        with pytest.raises(RangeError):
            client.create_input(CONTRACT, ACCOUNT).add_uint64(256)


# =============================================================================
# Readiness and timeouts
# =============================================================================

class TestReadiness:

    @pytest.mark.asyncio
    async def test_wait_until_ready(self, client: EncryptionClient):
        assert client.is_ready is False
        await client.wait_until_ready()
        assert client.is_ready is True

    @pytest.mark.asyncio
    async def test_wait_until_ready_times_out(self):
        client = EncryptionClient(MockEncryptionService(init_delay_seconds=1))
        with pytest.raises(ServiceUnavailable):
            await client.wait_until_ready(timeout=0.05)
        assert client.is_ready is False

    @pytest.mark.asyncio
    async def test_encrypt_timeout(self):
        service = MockEncryptionService(latency_seconds=1)
        client = EncryptionClient(service, timeout_seconds=0.05)
        await client.wait_until_ready()

        with pytest.raises(ActionTimeoutError):
            await client.create_input(CONTRACT, ACCOUNT).add_uint64(1).encrypt()


# =============================================================================
# Models
# =============================================================================

class TestModels:

    def test_short_handle_sentinel(self):
        assert short_handle(ZERO_HANDLE) == "No confidential balance"
        assert short_handle(b"") == "No confidential balance"

    def test_short_handle_truncates(self):
        text = short_handle(bytes(range(32)))
        assert text.startswith("0x00010203")
        assert text.endswith("1d1e1f")
        assert "…" in text

    def test_keypair_discard(self):
        keypair = EphemeralKeypair.generate()
        assert len(keypair.public_key) == 32
        assert keypair.discarded is False

        keypair.discard()
        assert keypair.discarded is True
        with pytest.raises(ValueError):
            keypair.open_sealed(b"\x00" * 48)
