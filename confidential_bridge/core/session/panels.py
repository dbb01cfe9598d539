"""
Per-asset panels for interactive surfaces.

A panel is the data a UI needs to render one asset: balances, a
sentinel-aware ciphertext display and which controls are usable right now.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..assets import AssetDescriptor
from ..encryption.models import handle_to_hex, short_handle
from .models import BalanceSnapshot, SessionContext, SessionState


@dataclass
class PanelControls:
    mint: bool = False
    wrap: bool = False
    unwrap: bool = False
    decrypt: bool = False
    reset: bool = False
    disabled_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "wrap": self.wrap,
            "unwrap": self.unwrap,
            "decrypt": self.decrypt,
            "reset": self.reset,
            "disabledReason": self.disabled_reason,
        }


@dataclass
class AssetPanel:
    asset: AssetDescriptor
    holder: Optional[str]
    state: SessionState
    busy: bool
    controls: PanelControls
    snapshot: Optional[BalanceSnapshot] = None
    decrypted_value: Optional[int] = None
    error_message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ciphertext_display(self) -> Optional[str]:
        if self.snapshot is None:
            return None
        return short_handle(self.snapshot.confidential_handle)

    def to_dict(self) -> Dict[str, Any]:
        snapshot = self.snapshot
        return {
            "asset": self.asset.to_dict(),
            "holder": self.holder,
            "state": self.state.value,
            "busy": self.busy,
            "underlyingBalance": str(snapshot.underlying_balance) if snapshot else None,
            "underlyingDisplay": (
                f"{self.asset.format_units(snapshot.underlying_balance)} {self.asset.symbol}" if snapshot else None
            ),
            "confidentialHandle": handle_to_hex(snapshot.confidential_handle) if snapshot else None,
            "ciphertextDisplay": self.ciphertext_display,
            "decryptedValue": str(self.decrypted_value) if self.decrypted_value is not None else None,
            "decryptedDisplay": (
                self.asset.format_units(self.decrypted_value) if self.decrypted_value is not None else None
            ),
            "errorMessage": self.error_message,
            "controls": self.controls.to_dict(),
            "warnings": list(self.warnings),
        }


def build_controls(
    context: Optional[SessionContext],
    snapshot: Optional[BalanceSnapshot],
    encryption_ready: bool,
    signer_bound: bool,
) -> PanelControls:
    """Decide which controls are usable.

    Everything is disabled while the session has an action outstanding,
    while encryption is initializing, or without a signer.
    """
    if context is not None and (context.is_busy or context.queued_actions):
        return PanelControls(disabled_reason="Action in progress")
    if not encryption_ready:
        return PanelControls(disabled_reason="Encryption service is initializing")
    if not signer_bound:
        return PanelControls(disabled_reason="Connect a wallet")
    if context is not None and context.current_state == SessionState.ERROR:
        return PanelControls(reset=True, disabled_reason="Session failed; reset after reviewing balances")

    has_underlying = snapshot is None or snapshot.underlying_balance > 0
    has_confidential = snapshot is None or snapshot.has_confidential_balance
    return PanelControls(
        mint=True,
        wrap=has_underlying,
        unwrap=has_confidential,
        decrypt=True,
    )


def build_panel(
    asset: AssetDescriptor,
    holder: Optional[str],
    context: Optional[SessionContext],
    snapshot: Optional[BalanceSnapshot],
    encryption_ready: bool,
    signer_bound: bool,
    warnings: Optional[List[str]] = None,
) -> AssetPanel:
    state = context.current_state if context else SessionState.IDLE
    return AssetPanel(
        asset=asset,
        holder=holder,
        state=state,
        busy=bool(context and (context.is_busy or context.queued_actions)),
        controls=build_controls(context, snapshot, encryption_ready, signer_bound),
        snapshot=snapshot,
        decrypted_value=context.decrypted_value if context and state == SessionState.DECRYPTED else None,
        error_message=context.error_message if context else None,
        warnings=list(warnings or []),
    )
