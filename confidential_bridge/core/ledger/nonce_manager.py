"""
Nonce management for concurrent transactions.

Sessions for different assets of the same holder run concurrently and all
sign with the same account; nonces are reserved here so their transactions
never collide.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional, Set

NonceFetcher = Callable[[str], Awaitable[int]]


@dataclass
class NonceState:
    """Tracks nonce state for one sending address."""
    address: str
    confirmed_nonce: int                        # Last confirmed on-chain
    pending_nonce: int                          # Next available for use
    reserved_nonces: Set[int] = field(default_factory=set)
    needs_sync: bool = False                    # A broadcast outcome is unknown
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NonceManager:
    """
    Manages nonces for concurrent transaction execution.

    Features:
    - Tracks pending nonces to avoid conflicts
    - Syncs with on-chain state on first use
    - Releases nonces of transactions that never got broadcast
    - Re-syncs after a broadcast whose outcome is unknown
    """

    def __init__(self, fetch_nonce: NonceFetcher):
        self._fetch_nonce = fetch_nonce
        self._states: Dict[str, NonceState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def get_next_nonce(self, address: str, sync: bool = False) -> int:
        """
        Reserve and return the next available nonce for an address.

        Args:
            address: The sending address
            sync: Whether to re-read the on-chain pending nonce first
        """
        key = address.lower()
        async with self._get_lock(key):
            existing = self._states.get(key)
            if existing is None or sync or existing.needs_sync:
                on_chain_nonce = await self._fetch_nonce(address)

                if existing is None:
                    self._states[key] = NonceState(
                        address=key,
                        confirmed_nonce=on_chain_nonce,
                        pending_nonce=on_chain_nonce,
                    )
                elif existing.needs_sync:
                    # The node is the only authority on whether a lost broadcast landed
                    existing.confirmed_nonce = on_chain_nonce
                    existing.reserved_nonces = {n for n in existing.reserved_nonces if n >= on_chain_nonce}
                    existing.pending_nonce = max([on_chain_nonce, *(n + 1 for n in existing.reserved_nonces)])
                    existing.needs_sync = False
                    existing.last_updated = datetime.now(timezone.utc)
                else:
                    # Update confirmed nonce, but don't decrease pending
                    existing.confirmed_nonce = on_chain_nonce
                    if on_chain_nonce > existing.pending_nonce:
                        existing.pending_nonce = on_chain_nonce
                    existing.last_updated = datetime.now(timezone.utc)

            state = self._states[key]

            nonce = state.pending_nonce
            while nonce in state.reserved_nonces:
                nonce += 1

            state.reserved_nonces.add(nonce)
            state.pending_nonce = nonce + 1
            return nonce

    async def release_nonce(self, address: str, nonce: int) -> None:
        """Release a reserved nonce (transaction failed before broadcast)."""
        key = address.lower()
        async with self._get_lock(key):
            state = self._states.get(key)
            if state is None:
                return
            state.reserved_nonces.discard(nonce)

            # If we released the highest nonce, we can reduce pending
            if nonce == state.pending_nonce - 1:
                while state.pending_nonce > state.confirmed_nonce:
                    if state.pending_nonce - 1 not in state.reserved_nonces:
                        state.pending_nonce -= 1
                    else:
                        break

    async def confirm_nonce(self, address: str, nonce: int) -> None:
        """Mark a nonce as consumed (transaction included in a block)."""
        key = address.lower()
        async with self._get_lock(key):
            state = self._states.get(key)
            if state is None:
                return
            state.reserved_nonces.discard(nonce)
            if nonce >= state.confirmed_nonce:
                state.confirmed_nonce = nonce + 1

    def get_state(self, address: str) -> Optional[NonceState]:
        return self._states.get(address.lower())

    async def discard_nonce(self, address: str, nonce: int) -> None:
        """Forget a nonce whose broadcast may or may not have reached the node.

        The nonce is not handed out again until the next reservation has
        re-read the account's pending nonce.
        """
        key = address.lower()
        async with self._get_lock(key):
            state = self._states.get(key)
            if state is None:
                return
            state.reserved_nonces.discard(nonce)
            state.needs_sync = True
