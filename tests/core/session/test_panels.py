"""
Tests for per-asset panels and control gating.
"""

import pytest

from confidential_bridge.core.encryption.models import ZERO_HANDLE
from confidential_bridge.core.session import BalanceSnapshot, SessionContext, SessionState
from confidential_bridge.core.session.models import ActionKind
from confidential_bridge.core.session.panels import build_controls
from confidential_bridge.core.wallet import StaticSignerProvider

HOLDER = "0x1234567890123456789012345678901234567890"


@pytest.fixture
def context() -> SessionContext:
    return SessionContext(holder=HOLDER, asset="zama")


def snapshot(underlying: int = 0, handle: bytes = ZERO_HANDLE) -> BalanceSnapshot:
    return BalanceSnapshot(holder=HOLDER, asset="zama", underlying_balance=underlying, confidential_handle=handle)


class TestBuildControls:

    def test_fresh_holder_can_only_mint_and_decrypt(self, context: SessionContext):
        controls = build_controls(context, snapshot(), encryption_ready=True, signer_bound=True)
        assert controls.mint and controls.decrypt
        assert not controls.wrap and not controls.unwrap

    def test_balances_enable_wrap_and_unwrap(self, context: SessionContext):
        controls = build_controls(context, snapshot(10, b"\x01" * 32), encryption_ready=True, signer_bound=True)
        assert controls.wrap and controls.unwrap

    def test_busy_session_disables_everything(self, context: SessionContext):
        context.pending_action = ActionKind.WRAP
        controls = build_controls(context, snapshot(10), encryption_ready=True, signer_bound=True)
        assert not any([controls.mint, controls.wrap, controls.unwrap, controls.decrypt, controls.reset])
        assert controls.disabled_reason == "Action in progress"

    def test_initializing_encryption_disables_everything(self, context: SessionContext):
        controls = build_controls(context, snapshot(10), encryption_ready=False, signer_bound=True)
        assert not controls.mint
        assert "initializing" in controls.disabled_reason

    def test_no_signer_disables_everything(self, context: SessionContext):
        controls = build_controls(context, snapshot(10), encryption_ready=True, signer_bound=False)
        assert not controls.mint
        assert controls.disabled_reason == "Connect a wallet"

    def test_error_state_only_allows_reset(self, context: SessionContext):
        context.current_state = SessionState.ERROR
        controls = build_controls(context, snapshot(10), encryption_ready=True, signer_bound=True)
        assert controls.reset
        assert not controls.mint


class TestOrchestratorPanels:

    @pytest.mark.asyncio
    async def test_panel_for_fresh_holder(self, orchestrator, signer):
        panel = await orchestrator.panel("zama")
        data = panel.to_dict()

        assert data["holder"] == signer.address
        assert data["state"] == "idle"
        assert data["underlyingBalance"] == "0"
        assert data["ciphertextDisplay"] == "No confidential balance"
        assert data["controls"]["mint"] is True

    @pytest.mark.asyncio
    async def test_panel_after_wrap(self, orchestrator, zama):
        await orchestrator.mint("zama", zama.parse_units("250"))
        await orchestrator.wrap("zama", zama.parse_units("42"))
        await orchestrator.decrypt_balance("zama")

        data = (await orchestrator.panel("zama")).to_dict()
        assert data["underlyingDisplay"] == "208 ZAMA"
        assert data["ciphertextDisplay"].startswith("0x")
        assert data["decryptedDisplay"] == "42"
        assert data["controls"]["unwrap"] is True

    @pytest.mark.asyncio
    async def test_panels_cover_every_asset(self, orchestrator):
        panels = await orchestrator.panels()
        assert [p.asset.key for p in panels] == ["zama", "usdc", "eth"]

    @pytest.mark.asyncio
    async def test_panel_without_signer(self, orchestrator):
        orchestrator.signer_provider = StaticSignerProvider()
        panel = await orchestrator.panel("zama")

        assert panel.holder is None
        assert panel.snapshot is None
        assert panel.controls.disabled_reason == "Connect a wallet"
