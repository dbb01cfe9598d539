"""
Bridge Orchestrator

Sequences mint, approve, wrap, unwrap and decrypt as serialized
per-(holder, asset) sessions.

Every action:
- validates its guards before touching the ledger, the encryption service,
  the oracle or the signer
- runs alone within its session (FIFO queueing, or rejection when
  ``reject_busy_sessions`` is set)
- bounds every external wait with a timeout
- invalidates and re-reads the session's balances after committing
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, TypeVar

import structlog
from eth_utils import is_address, to_checksum_address

from ...config import settings
from ..assets import AssetDescriptor, AssetRegistry
from ..authorization.signer import AuthorizationSigner
from ..encryption.client import EncryptionClient, check_amount
from ..encryption.models import is_zero_handle
from ..errors import (
    ActionTimeoutError,
    BridgeError,
    BroadcastUncertainError,
    ConnectivityError,
    InsufficientBalanceError,
    OracleRequestNotFound,
    ServiceUnavailable,
    SessionBusyError,
    SessionFailedError,
    SettlementPending,
    SignerUnavailable,
    ValidationError,
    classify_error,
)
from ..ledger.base import LedgerGateway
from ..oracle.client import DecryptionOracleClient
from ..wallet import AccountSigner, SignerProvider
from .cache import BalanceCache
from .models import (
    STEADY_STATES,
    ActionKind,
    ActionResult,
    BalanceSnapshot,
    ErrorKind,
    SessionContext,
    SessionKey,
    SessionState,
    session_key,
)
from .panels import AssetPanel, build_panel
from .state_machine import SessionStateMachine, TransitionCallback

logger = logging.getLogger(__name__)
events = structlog.stdlib.get_logger("bridge.session")

T = TypeVar("T")

_ERROR_KIND = {
    ActionKind.MINT: ErrorKind.MINT_FAILED,
    ActionKind.WRAP: ErrorKind.WRAP_FAILED,
    ActionKind.UNWRAP: ErrorKind.UNWRAP_FAILED,
    ActionKind.DECRYPT: ErrorKind.DECRYPT_FAILED,
}


@dataclass
class Session:
    context: SessionContext
    machine: SessionStateMachine
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class BridgeOrchestrator:
    """The only component callers talk to."""

    def __init__(
        self,
        registry: AssetRegistry,
        ledger: LedgerGateway,
        encryption: EncryptionClient,
        authorization: AuthorizationSigner,
        oracle: DecryptionOracleClient,
        signer_provider: SignerProvider,
        cache: Optional[BalanceCache] = None,
        confirmation_timeout_seconds: Optional[float] = None,
        call_timeout_seconds: Optional[float] = None,
        reject_busy_sessions: Optional[bool] = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.encryption = encryption
        self.authorization = authorization
        self.oracle = oracle
        self.signer_provider = signer_provider
        self.cache = cache or BalanceCache()
        self.confirmation_timeout_seconds = confirmation_timeout_seconds or settings.confirmation_timeout_seconds
        self.call_timeout_seconds = call_timeout_seconds or settings.rpc_timeout_seconds
        self.reject_busy_sessions = (
            settings.reject_busy_sessions if reject_busy_sessions is None else reject_busy_sessions
        )
        self._sessions: Dict[SessionKey, Session] = {}
        self._transition_callbacks: List[TransitionCallback] = []

    # =========================================================================
    # Sessions
    # =========================================================================

    def _session(self, holder: str, asset_key: str) -> Session:
        key = session_key(holder, asset_key)
        session = self._sessions.get(key)
        if session is None:
            context = SessionContext(holder=to_checksum_address(holder), asset=asset_key)
            machine = SessionStateMachine(context)
            for callback in self._transition_callbacks:
                machine.register_transition_callback(callback)
            session = Session(context=context, machine=machine)
            self._sessions[key] = session
        return session

    def get_session(self, asset_key: str, holder: str) -> SessionContext:
        asset = self.registry.resolve(asset_key)
        return self._session(holder, asset.key).context

    def register_transition_callback(self, callback: TransitionCallback) -> None:
        """Observe every transition of every session, including ones created later."""
        self._transition_callbacks.append(callback)
        for session in self._sessions.values():
            session.machine.register_transition_callback(callback)

    @asynccontextmanager
    async def _acquire(self, session: Session, kind: ActionKind) -> AsyncIterator[Session]:
        """Run one action alone in its session."""
        ctx = session.context
        if self.reject_busy_sessions and (session.lock.locked() or ctx.queued_actions):
            raise SessionBusyError(
                f"Session {ctx.holder}/{ctx.asset} is busy with {ctx.pending_action.value if ctx.pending_action else 'another action'}",
                asset=ctx.asset,
            )

        ctx.queued_actions += 1
        try:
            await session.lock.acquire()
        finally:
            ctx.queued_actions -= 1

        ctx.pending_action = kind
        try:
            with structlog.contextvars.bound_contextvars(holder=ctx.holder, asset=ctx.asset, action=kind.value):
                try:
                    yield session
                except BaseException as exc:
                    await self._abandon(session, kind, exc)
                    raise
        finally:
            ctx.pending_action = None
            session.lock.release()

    async def _abandon(self, session: Session, kind: ActionKind, exc: BaseException) -> None:
        """An action left its session mid-flight; park it in Error.

        An abandoned wrap falls back to where it started instead, like any
        other wrap failure.
        """
        ctx = session.context
        state = ctx.current_state
        if state in STEADY_STATES or state in (SessionState.DECRYPTED, SessionState.ERROR):
            return
        if state in (SessionState.APPROVING, SessionState.WRAPPING):
            await session.machine.revert(
                ctx.last_steady_state,
                f"Action abandoned in {state.value}: {exc!r}",
                "ACTION_ABANDONED",
            )
            return
        error_kind = _ERROR_KIND.get(kind, ErrorKind.MINT_FAILED)
        await session.machine.fail(
            error_kind,
            f"Action abandoned in {state.value}: {exc!r}",
            "ACTION_ABANDONED",
            recoverable=True,
        )

    def _origin(self, session: Session) -> SessionState:
        """The steady state an action starts from (and falls back to)."""
        ctx = session.context
        if ctx.current_state == SessionState.ERROR:
            raise SessionFailedError(
                f"Session {ctx.holder}/{ctx.asset} failed ({ctx.error_kind.value if ctx.error_kind else 'error'}); "
                "reset it after reviewing balances",
                asset=ctx.asset,
            )
        if ctx.current_state == SessionState.DECRYPTED:
            return ctx.last_steady_state
        return ctx.current_state

    async def _enter(self, session: Session, state: SessionState, reason: Optional[str] = None) -> None:
        await session.machine.resume()
        await session.machine.begin(state, reason)

    async def _fail(self, session: Session, kind: ErrorKind, exc: BaseException) -> None:
        error_context = classify_error(exc) if isinstance(exc, Exception) else None
        await session.machine.fail(
            kind,
            str(exc) or exc.__class__.__name__,
            error_context.code if error_context else None,
            error_context.recoverable if error_context else False,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _bounded(self, awaitable: Awaitable[T], operation: str, seconds: Optional[float] = None) -> T:
        seconds = seconds or self.call_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, seconds)
        except asyncio.TimeoutError:
            raise ActionTimeoutError(operation, seconds) from None

    def _resolve(self, asset_key: str) -> AssetDescriptor:
        asset = self.registry.resolve(asset_key)
        if not asset.is_deployed:
            raise ValidationError(f"Asset {asset.key} has no deployed contracts", asset=asset.key)
        return asset

    @staticmethod
    def _address(value: Optional[str], default: str, field_name: str) -> str:
        if value is None:
            return default
        if not is_address(value):
            raise ValidationError(f"Invalid {field_name} address {value!r}", field=field_name)
        return to_checksum_address(value)

    async def _require_signer(self) -> AccountSigner:
        signer = await self.signer_provider.get_signer()
        if signer is None:
            raise SignerUnavailable()
        return signer

    async def _holder(self, holder: Optional[str]) -> str:
        if holder is not None:
            return self._address(holder, holder, "holder")
        return (await self._require_signer()).address

    def _check_amount(self, amount: int) -> int:
        return check_amount(amount, self.encryption.ceiling, allow_zero=False)

    async def _read_snapshot(self, asset: AssetDescriptor, holder: str) -> BalanceSnapshot:
        underlying, handle = await asyncio.gather(
            self._bounded(self.ledger.balance_of(asset, holder), "balance read"),
            self._bounded(self.ledger.confidential_balance_of(asset, holder), "confidential balance read"),
        )
        return BalanceSnapshot(
            holder=to_checksum_address(holder),
            asset=asset.key,
            underlying_balance=underlying,
            confidential_handle=handle,
        )

    async def _refresh_after(
        self,
        session: Session,
        asset: AssetDescriptor,
        warnings: List[str],
        others: Optional[List[str]] = None,
    ) -> Optional[BalanceSnapshot]:
        """Invalidate and re-read after a committed action. Failures only warn."""
        ctx = session.context
        await self.cache.invalidate(ctx.holder, asset.key)
        for other in others or []:
            if other.lower() != ctx.holder.lower():
                await self.cache.invalidate(other, asset.key)

        try:
            snapshot = await self._read_snapshot(asset, ctx.holder)
        except Exception as exc:
            logger.warning(f"Balance refresh failed for {ctx.holder}/{asset.key}: {exc}")
            warnings.append(f"Balance refresh failed: {exc}")
            return None

        await self.cache.put(ctx.key, snapshot)
        return snapshot

    @staticmethod
    def _steady_for(snapshot: BalanceSnapshot) -> SessionState:
        if snapshot.has_confidential_balance:
            return SessionState.WRAPPED
        if snapshot.underlying_balance > 0:
            return SessionState.MINTED
        return SessionState.IDLE

    # =========================================================================
    # Queries
    # =========================================================================

    def list_assets(self) -> List[AssetDescriptor]:
        return list(self.registry)

    async def initialize(self, timeout: Optional[float] = None) -> None:
        await self.encryption.wait_until_ready(timeout)

    async def refresh(self, asset_key: str, holder: Optional[str] = None) -> BalanceSnapshot:
        asset = self._resolve(asset_key)
        holder = await self._holder(holder)
        snapshot = await self._read_snapshot(asset, holder)
        await self.cache.put(session_key(holder, asset.key), snapshot)
        return snapshot

    async def balances(self, asset_key: str, holder: Optional[str] = None) -> BalanceSnapshot:
        """Cached snapshot, re-read when missing or stale."""
        asset = self._resolve(asset_key)
        holder = await self._holder(holder)
        snapshot = await self.cache.get(holder, asset.key)
        if snapshot is None:
            snapshot = await self.refresh(asset.key, holder)
        return snapshot

    async def panel(self, asset_key: str, holder: Optional[str] = None) -> AssetPanel:
        asset = self.registry.resolve(asset_key)
        signer = await self.signer_provider.get_signer()
        if holder is not None:
            holder = self._address(holder, holder, "holder")
        elif signer is not None:
            holder = signer.address

        warnings: List[str] = []
        context = None
        snapshot = None
        if holder is not None:
            context = self._session(holder, asset.key).context
            if asset.is_deployed:
                try:
                    snapshot = await self.balances(asset.key, holder)
                except BridgeError as exc:
                    warnings.append(f"Balances unavailable: {exc}")
            else:
                warnings.append("Asset contracts are not deployed")

        return build_panel(
            asset,
            holder,
            context,
            snapshot,
            encryption_ready=self.encryption.is_ready,
            signer_bound=signer is not None and asset.is_deployed,
            warnings=warnings,
        )

    async def panels(self, holder: Optional[str] = None) -> List[AssetPanel]:
        return [await self.panel(asset.key, holder) for asset in self.registry]

    # =========================================================================
    # Actions
    # =========================================================================

    async def mint(self, asset_key: str, amount: int, to: Optional[str] = None) -> ActionResult:
        """Mint underlying tokens to ``to`` (default: the signer)."""
        asset = self._resolve(asset_key)
        self._check_amount(amount)
        signer = await self._require_signer()
        to = self._address(to, signer.address, "to")
        session = self._session(signer.address, asset.key)

        async with self._acquire(session, ActionKind.MINT):
            machine = session.machine
            prior = self._origin(session)
            await self._enter(session, SessionState.MINTING, f"mint {amount} to {to}")

            try:
                tx = await self._bounded(self.ledger.mint(signer, asset, to, amount), "mint submission")
            except ConnectivityError as exc:
                await machine.revert(prior, str(exc), exc.code)
                raise
            except Exception as exc:
                await self._fail(session, ErrorKind.MINT_FAILED, exc)
                raise

            try:
                await self.ledger.wait_for_receipt(tx, self.confirmation_timeout_seconds)
            except Exception as exc:
                await self._fail(session, ErrorKind.MINT_FAILED, exc)
                raise

            # Minting never touches the confidential balance
            minted = SessionState.WRAPPED if prior == SessionState.WRAPPED else SessionState.MINTED
            await machine.transition_to(minted, reason=f"mint {tx.tx_hash} confirmed")
            events.info("mint_confirmed", amount=str(amount), to=to, tx_hash=tx.tx_hash)

            result = ActionResult(
                action=ActionKind.MINT,
                asset=asset.key,
                holder=signer.address,
                state=machine.current_state,
                tx_hashes=[tx.tx_hash],
            )
            session.context.last_tx_hashes = list(result.tx_hashes)
            result.snapshot = await self._refresh_after(session, asset, result.warnings, others=[to])
            return result

    async def wrap(self, asset_key: str, amount: int, recipient: Optional[str] = None) -> ActionResult:
        """Approve the wrapper and convert underlying into a confidential balance."""
        asset = self._resolve(asset_key)
        self._check_amount(amount)
        signer = await self._require_signer()
        recipient = self._address(recipient, signer.address, "recipient")
        session = self._session(signer.address, asset.key)

        async with self._acquire(session, ActionKind.WRAP):
            machine = session.machine
            prior = self._origin(session)

            available = await self._bounded(self.ledger.balance_of(asset, signer.address), "balance read")
            if amount > available:
                raise InsufficientBalanceError(amount, available, asset.key)

            await self._enter(session, SessionState.APPROVING, f"approve {amount}")
            tx_hashes: List[str] = []
            try:
                approve_tx = await self._bounded(
                    self.ledger.approve(signer, asset, asset.confidential_address, amount),
                    "approve submission",
                )
                tx_hashes.append(approve_tx.tx_hash)
                await self.ledger.wait_for_receipt(approve_tx, self.confirmation_timeout_seconds)

                await machine.transition_to(SessionState.WRAPPING, reason=f"approve {approve_tx.tx_hash} confirmed")
                wrap_tx = await self._bounded(
                    self.ledger.wrap(signer, asset, recipient, amount),
                    "wrap submission",
                )
                tx_hashes.append(wrap_tx.tx_hash)
                await self.ledger.wait_for_receipt(wrap_tx, self.confirmation_timeout_seconds)
            except Exception as exc:
                await machine.revert(prior, str(exc) or exc.__class__.__name__, getattr(exc, "code", None))
                raise

            await machine.transition_to(SessionState.WRAPPED, reason=f"wrap {wrap_tx.tx_hash} confirmed")
            events.info("wrap_confirmed", amount=str(amount), recipient=recipient, tx_hashes=tx_hashes)

            result = ActionResult(
                action=ActionKind.WRAP,
                asset=asset.key,
                holder=signer.address,
                state=machine.current_state,
                tx_hashes=tx_hashes,
            )
            session.context.last_tx_hashes = list(tx_hashes)
            result.snapshot = await self._refresh_after(session, asset, result.warnings, others=[recipient])
            return result

    async def unwrap(
        self,
        asset_key: str,
        amount: int,
        from_: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> ActionResult:
        """Burn confidential balance and have the oracle release underlying to ``recipient``."""
        asset = self._resolve(asset_key)
        self._check_amount(amount)
        signer = await self._require_signer()
        from_address = self._address(from_, signer.address, "from")
        recipient = self._address(recipient, signer.address, "recipient")
        if not self.encryption.is_ready:
            raise ServiceUnavailable()
        session = self._session(signer.address, asset.key)

        async with self._acquire(session, ActionKind.UNWRAP):
            machine = session.machine
            prior = self._origin(session)

            previous_handle = await self._bounded(
                self.ledger.confidential_balance_of(asset, from_address),
                "confidential balance read",
            )
            if is_zero_handle(previous_handle):
                raise ValidationError(f"Nothing to unwrap: {from_address} has no confidential {asset.symbol}")

            await self._enter(session, SessionState.ENCRYPTING, f"unwrap {amount} to {recipient}")
            try:
                encrypted = await (
                    self.encryption.create_input(asset.confidential_address, signer.address)
                    .add_uint64(amount)
                    .encrypt()
                )
            except Exception as exc:
                # Nothing has been broadcast yet
                await machine.revert(prior, str(exc) or exc.__class__.__name__, getattr(exc, "code", None))
                raise

            try:
                await machine.transition_to(SessionState.UNWRAPPING, reason="encrypted amount ready")
                tx = await self._bounded(
                    self.oracle.submit_unwrap(signer, asset, from_address, recipient, encrypted),
                    "unwrap submission",
                )
            except BroadcastUncertainError as exc:
                await self._fail(session, ErrorKind.UNWRAP_FAILED, exc)
                raise
            except BridgeError as exc:
                await machine.revert(prior, str(exc), exc.code)
                raise
            except Exception as exc:
                await self._fail(session, ErrorKind.UNWRAP_FAILED, exc)
                raise

            try:
                receipt = await self.ledger.wait_for_receipt(tx, self.confirmation_timeout_seconds)
            except Exception as exc:
                await self._fail(session, ErrorKind.UNWRAP_FAILED, exc)
                raise

            result = ActionResult(
                action=ActionKind.UNWRAP,
                asset=asset.key,
                holder=signer.address,
                state=machine.current_state,
                tx_hashes=[tx.tx_hash],
            )
            session.context.last_tx_hashes = list(result.tx_hashes)

            try:
                event = self.oracle.correlate(receipt, asset.confidential_address)
            except OracleRequestNotFound as exc:
                await machine.revert(SessionState.WRAPPED, str(exc), exc.code)
                await self._refresh_after(session, asset, result.warnings, others=[recipient])
                raise

            session.context.last_request = event
            result.request = event
            await machine.transition_to(SessionState.AWAITING_ORACLE, reason=f"oracle request {event.request_id}")

            try:
                await self.oracle.await_settlement(asset, from_address, previous_handle)
            except SettlementPending as exc:
                result.warnings.append(str(exc))

            await machine.transition_to(SessionState.WRAPPED, reason=f"unwrap {tx.tx_hash} settled")
            events.info(
                "unwrap_confirmed",
                amount=str(amount),
                recipient=recipient,
                tx_hash=tx.tx_hash,
                request_id=str(event.request_id),
            )

            result.state = machine.current_state
            result.snapshot = await self._refresh_after(session, asset, result.warnings, others=[recipient])
            return result

    async def decrypt_balance(self, asset_key: str, holder: Optional[str] = None) -> ActionResult:
        """Decrypt the holder's confidential balance through a fresh authorization."""
        asset = self._resolve(asset_key)
        signer = await self.signer_provider.get_signer()
        if holder is None:
            if signer is None:
                raise SignerUnavailable()
            holder = signer.address
        holder = self._address(holder, holder, "holder")
        session = self._session(holder, asset.key)

        async with self._acquire(session, ActionKind.DECRYPT):
            machine = session.machine
            ctx = session.context
            prior = self._origin(session)

            handle = await self._bounded(
                self.ledger.confidential_balance_of(asset, holder),
                "confidential balance read",
            )
            result = ActionResult(action=ActionKind.DECRYPT, asset=asset.key, holder=holder, state=prior)

            if is_zero_handle(handle):
                await self._enter(session, SessionState.DECRYPTED, "no confidential balance")
                ctx.decrypted_value = 0
                result.value = 0
                result.formatted_value = asset.format_units(0)
                result.state = machine.current_state
                return result

            if signer is None:
                raise SignerUnavailable()
            if signer.address.lower() != holder.lower():
                raise ValidationError("Only the holder can authorize decryption of their balance", holder=holder)
            if not self.encryption.is_ready:
                raise ServiceUnavailable()

            await self._enter(session, SessionState.DECRYPTING, "user decryption")
            keypair = self.authorization.generate_keypair()
            try:
                payload = self.authorization.build_authorization(keypair.public_key, [asset.confidential_address])
                authorization = await self.authorization.sign(payload, signer)
                values = await self.oracle.resolve([handle], authorization, keypair, asset.confidential_address)
            except BridgeError as exc:
                await machine.revert(prior, str(exc), exc.code)
                raise
            except Exception as exc:
                await self._fail(session, ErrorKind.DECRYPT_FAILED, exc)
                raise
            finally:
                keypair.discard()

            value = values[handle]
            ctx.decrypted_value = value
            await machine.transition_to(SessionState.DECRYPTED, reason="oracle resolved handle")
            events.info("balance_decrypted", handle=f"0x{handle.hex()}")

            result.value = value
            result.formatted_value = asset.format_units(value)
            result.state = machine.current_state
            return result

    async def reset(self, asset_key: str, holder: Optional[str] = None) -> ActionResult:
        """Leave Error (or Decrypted) for the steady state the ledger now shows."""
        asset = self._resolve(asset_key)
        holder = await self._holder(holder)
        session = self._session(holder, asset.key)

        async with self._acquire(session, ActionKind.RESET):
            machine = session.machine
            ctx = session.context
            snapshot = await self._read_snapshot(asset, holder)
            await self.cache.put(ctx.key, snapshot)

            if ctx.current_state == SessionState.ERROR:
                await machine.reset(self._steady_for(snapshot))
            elif ctx.current_state == SessionState.DECRYPTED:
                await machine.resume()

            return ActionResult(
                action=ActionKind.RESET,
                asset=asset.key,
                holder=ctx.holder,
                state=machine.current_state,
                snapshot=snapshot,
            )

    async def health_check(self) -> Dict[str, Any]:
        ledger_health = await self.ledger.health_check()
        encryption_health = await self.encryption.service.health_check()
        ready = ledger_health.get("status") == "healthy" and self.encryption.is_ready
        return {
            "status": "ok" if ready else "degraded",
            "ledger": ledger_health,
            "encryption": encryption_health,
            "sessions": len(self._sessions),
        }

    async def close(self) -> None:
        await self.ledger.close()
        await self.encryption.service.close()
