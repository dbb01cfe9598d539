"""
Tests for the relayer-backed encryption service.
"""

from unittest.mock import AsyncMock

import httpx
import pytest
from nacl.public import PublicKey, SealedBox

from confidential_bridge.core.encryption import DecryptionAuthorization, EphemeralKeypair, RelayerEncryptionService
from confidential_bridge.core.errors import AuthorizationExpired, ConnectivityError, DecryptionFailed, ServiceUnavailable

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
ACCOUNT = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
HANDLE = b"\x07" * 32


def status_error(status: int, text: str) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://relayer.test/v1/user-decrypt")
    return httpx.HTTPStatusError(text, request=request, response=httpx.Response(status, text=text, request=request))


@pytest.fixture
def keypair() -> EphemeralKeypair:
    return EphemeralKeypair.generate()


@pytest.fixture
def authorization(keypair: EphemeralKeypair) -> DecryptionAuthorization:
    return DecryptionAuthorization(
        public_key=keypair.public_key,
        contract_addresses=(CONTRACT,),
        start_timestamp=1_700_000_000,
        duration_days=7,
        signature=b"\x01" * 65,
        user_address=ACCOUNT,
    )


@pytest.fixture
def relayer(monkeypatch) -> RelayerEncryptionService:
    service = RelayerEncryptionService(base_url="https://relayer.test/", contracts_chain_id=11155111)
    monkeypatch.setattr(service, "_request", AsyncMock(return_value={"fheKeyInfo": []}))
    return service


class TestRelayerEncryptionService:

    @pytest.mark.asyncio
    async def test_initialize(self, relayer: RelayerEncryptionService):
        assert relayer.base_url == "https://relayer.test"
        assert relayer.is_ready is False

        await relayer.initialize()
        await relayer.initialize()

        assert relayer.is_ready is True
        relayer._request.assert_awaited_once_with("GET", "/v1/keyurl")

    @pytest.mark.asyncio
    async def test_initialize_rejected(self, relayer: RelayerEncryptionService):
        relayer._request.side_effect = status_error(502, "bad gateway")
        with pytest.raises(ServiceUnavailable):
            await relayer.initialize()
        assert relayer.is_ready is False

    @pytest.mark.asyncio
    async def test_encrypt(self, relayer: RelayerEncryptionService):
        await relayer.initialize()
        relayer._request.return_value = {"handles": ["0x" + HANDLE.hex()], "inputProof": "0x0102"}

        encrypted = await relayer.encrypt(CONTRACT, ACCOUNT, [5], 64)

        assert encrypted.handles == (HANDLE,)
        assert encrypted.proof == b"\x01\x02"
        assert encrypted.is_bound_to(CONTRACT, ACCOUNT)
        payload = relayer._request.await_args.kwargs["json"]
        assert payload["values"] == ["5"]
        assert payload["bitWidth"] == 64

    @pytest.mark.asyncio
    async def test_encrypt_requires_initialization(self, relayer: RelayerEncryptionService):
        with pytest.raises(ServiceUnavailable):
            await relayer.encrypt(CONTRACT, ACCOUNT, [5], 64)

    @pytest.mark.asyncio
    async def test_encrypt_malformed_reply(self, relayer: RelayerEncryptionService):
        await relayer.initialize()
        relayer._request.return_value = {"inputProof": "0x0102"}

        with pytest.raises(ServiceUnavailable):
            await relayer.encrypt(CONTRACT, ACCOUNT, [5], 64)

    @pytest.mark.asyncio
    async def test_non_json_reply_is_connectivity_error(self, monkeypatch):
        async_client = httpx.AsyncClient

        def garbled(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        monkeypatch.setattr(
            httpx, "AsyncClient", lambda **kwargs: async_client(transport=httpx.MockTransport(garbled), **kwargs)
        )
        service = RelayerEncryptionService(base_url="https://relayer.test", contracts_chain_id=11155111)

        with pytest.raises(ConnectivityError) as exc_info:
            await service.initialize()
        assert "malformed" in str(exc_info.value)
        assert service.is_ready is False

    @pytest.mark.asyncio
    async def test_user_decrypt_opens_sealed_replies(self, relayer, authorization, keypair):
        await relayer.initialize()
        sealed = SealedBox(PublicKey(keypair.public_key)).encrypt((42).to_bytes(32, "big"))
        relayer._request.return_value = {"response": [{"handle": "0x" + HANDLE.hex(), "payload": sealed.hex()}]}

        values = await relayer.user_decrypt([(HANDLE, CONTRACT)], authorization, keypair)

        assert values == {HANDLE: 42}
        payload = relayer._request.await_args.kwargs["json"]
        assert payload["handleContractPairs"] == [{"handle": "0x" + HANDLE.hex(), "contractAddress": CONTRACT}]
        assert payload["requestValidity"] == {"startTimestamp": "1700000000", "durationDays": "7"}

    @pytest.mark.asyncio
    async def test_user_decrypt_expired(self, relayer, authorization, keypair):
        await relayer.initialize()
        relayer._request.side_effect = status_error(400, "request has expired")

        with pytest.raises(AuthorizationExpired):
            await relayer.user_decrypt([(HANDLE, CONTRACT)], authorization, keypair)

    @pytest.mark.asyncio
    async def test_user_decrypt_rejected(self, relayer, authorization, keypair):
        await relayer.initialize()
        relayer._request.side_effect = status_error(403, "not allowed")

        with pytest.raises(DecryptionFailed):
            await relayer.user_decrypt([(HANDLE, CONTRACT)], authorization, keypair)

    @pytest.mark.asyncio
    async def test_reply_sealed_to_another_key(self, relayer, authorization, keypair):
        await relayer.initialize()
        stranger = EphemeralKeypair.generate()
        sealed = SealedBox(PublicKey(stranger.public_key)).encrypt((42).to_bytes(32, "big"))
        relayer._request.return_value = {"response": [{"handle": "0x" + HANDLE.hex(), "payload": sealed.hex()}]}

        with pytest.raises(DecryptionFailed):
            await relayer.user_decrypt([(HANDLE, CONTRACT)], authorization, keypair)
