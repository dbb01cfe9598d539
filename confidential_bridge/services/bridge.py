"""
Wiring of the bridge components.

Builds a ``BridgeOrchestrator`` either against real collaborators (JSON-RPC
ledger, HTTP relayer) or fully in-process (mock ledger and encryption).
"""

import logging
from typing import Optional

from ..config import settings
from ..core.assets import AssetRegistry
from ..core.authorization import AuthorizationSigner
from ..core.encryption import EncryptionClient, MockEncryptionService, RelayerEncryptionService
from ..core.ledger import JsonRpcLedger, MockLedger
from ..core.oracle import DecryptionOracleClient
from ..core.session import BalanceCache, BridgeOrchestrator
from ..core.wallet import LocalAccountSigner, SignerProvider, StaticSignerProvider, signer_provider_from_settings

logger = logging.getLogger(__name__)


def build_mock_orchestrator(
    registry: Optional[AssetRegistry] = None,
    signer_provider: Optional[SignerProvider] = None,
    auto_fulfill: bool = True,
) -> BridgeOrchestrator:
    """Everything in-process; a random account is bound when none is configured."""
    service = MockEncryptionService()
    ledger = MockLedger(service, auto_fulfill=auto_fulfill)
    registry = ledger.deploy(registry or AssetRegistry.load())

    if signer_provider is None:
        if settings.has_signer_key:
            signer_provider = signer_provider_from_settings()
        else:
            signer_provider = StaticSignerProvider(LocalAccountSigner.create())

    return BridgeOrchestrator(
        registry=registry,
        ledger=ledger,
        encryption=EncryptionClient(service),
        authorization=AuthorizationSigner(service),
        oracle=DecryptionOracleClient(ledger, service, poll_interval_seconds=0.05),
        signer_provider=signer_provider,
        cache=BalanceCache(),
    )


def build_orchestrator(
    registry: Optional[AssetRegistry] = None,
    signer_provider: Optional[SignerProvider] = None,
) -> BridgeOrchestrator:
    """Build against the configured collaborators."""
    if settings.use_mock_backends:
        logger.info("Using in-process ledger and encryption service")
        return build_mock_orchestrator(registry, signer_provider)

    service = RelayerEncryptionService()
    ledger = JsonRpcLedger()
    return BridgeOrchestrator(
        registry=registry or AssetRegistry.load(),
        ledger=ledger,
        encryption=EncryptionClient(service),
        authorization=AuthorizationSigner(service),
        oracle=DecryptionOracleClient(ledger, service),
        signer_provider=signer_provider or signer_provider_from_settings(),
        cache=BalanceCache(),
    )


# Singleton instance
_orchestrator: Optional[BridgeOrchestrator] = None


def get_orchestrator() -> BridgeOrchestrator:
    """Get the singleton orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


def set_orchestrator(orchestrator: Optional[BridgeOrchestrator]) -> None:
    """Replace the singleton (tests, CLI)."""
    global _orchestrator
    _orchestrator = orchestrator
