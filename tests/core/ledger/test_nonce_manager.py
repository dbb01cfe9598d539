"""
Tests for nonce reservation across concurrent sessions.
"""

import asyncio

import pytest

from confidential_bridge.core.ledger import NonceManager

ADDRESS = "0x1234567890123456789012345678901234567890"


@pytest.fixture
def nonce_manager() -> NonceManager:
    async def fetch(address: str) -> int:
        return 5

    return NonceManager(fetch)


class TestNonceManager:

    @pytest.mark.asyncio
    async def test_sequential_reservations(self, nonce_manager: NonceManager):
        assert await nonce_manager.get_next_nonce(ADDRESS) == 5
        assert await nonce_manager.get_next_nonce(ADDRESS) == 6

    @pytest.mark.asyncio
    async def test_concurrent_reservations_are_unique(self, nonce_manager: NonceManager):
        nonces = await asyncio.gather(*(nonce_manager.get_next_nonce(ADDRESS) for _ in range(10)))
        assert sorted(nonces) == list(range(5, 15))

    @pytest.mark.asyncio
    async def test_release_highest_nonce_reuses_it(self, nonce_manager: NonceManager):
        await nonce_manager.get_next_nonce(ADDRESS)
        nonce = await nonce_manager.get_next_nonce(ADDRESS)
        await nonce_manager.release_nonce(ADDRESS, nonce)

        assert await nonce_manager.get_next_nonce(ADDRESS) == nonce

    @pytest.mark.asyncio
    async def test_confirm_advances_confirmed_nonce(self, nonce_manager: NonceManager):
        nonce = await nonce_manager.get_next_nonce(ADDRESS)
        await nonce_manager.confirm_nonce(ADDRESS, nonce)

        state = nonce_manager.get_state(ADDRESS)
        assert state.confirmed_nonce == nonce + 1
        assert nonce not in state.reserved_nonces

    @pytest.mark.asyncio
    async def test_sync_never_lowers_pending(self):
        on_chain = {"nonce": 5}

        async def fetch(address: str) -> int:
            return on_chain["nonce"]

        manager = NonceManager(fetch)
        await manager.get_next_nonce(ADDRESS)
        await manager.get_next_nonce(ADDRESS)

        on_chain["nonce"] = 3
        assert await manager.get_next_nonce(ADDRESS, sync=True) == 7

        on_chain["nonce"] = 10
        assert await manager.get_next_nonce(ADDRESS, sync=True) == 10

    @pytest.mark.asyncio
    async def test_discarded_nonce_forces_resync(self):
        on_chain = {"count": 5}
        fetches = []

        async def fetch(address: str) -> int:
            fetches.append(address)
            return on_chain["count"]

        manager = NonceManager(fetch)
        nonce = await manager.get_next_nonce(ADDRESS)
        await manager.discard_nonce(ADDRESS, nonce)
        assert manager.get_state(ADDRESS).needs_sync

        # The lost broadcast never reached the node
        assert await manager.get_next_nonce(ADDRESS) == 5
        assert len(fetches) == 2
        assert not manager.get_state(ADDRESS).needs_sync

    @pytest.mark.asyncio
    async def test_resync_keeps_nonces_still_in_flight(self):
        on_chain = {"count": 5}

        async def fetch(address: str) -> int:
            return on_chain["count"]

        manager = NonceManager(fetch)
        lost = await manager.get_next_nonce(ADDRESS)
        in_flight = await manager.get_next_nonce(ADDRESS)
        await manager.discard_nonce(ADDRESS, lost)

        on_chain["count"] = 6
        assert await manager.get_next_nonce(ADDRESS) == in_flight + 1
