"""
Shared fixtures: an in-process ledger and encryption service with the
bundled asset registry deployed onto it.
"""

import pytest
import pytest_asyncio

from confidential_bridge.core.assets import AssetDescriptor, AssetRegistry
from confidential_bridge.core.authorization import AuthorizationSigner
from confidential_bridge.core.encryption import EncryptionClient, MockEncryptionService
from confidential_bridge.core.ledger import MockLedger
from confidential_bridge.core.oracle import DecryptionOracleClient
from confidential_bridge.core.session import BalanceCache, BridgeOrchestrator
from confidential_bridge.core.wallet import LocalAccountSigner, StaticSignerProvider


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def encryption_service() -> MockEncryptionService:
    return MockEncryptionService()


@pytest.fixture
def ledger(encryption_service: MockEncryptionService) -> MockLedger:
    return MockLedger(encryption_service)


@pytest.fixture
def registry(ledger: MockLedger) -> AssetRegistry:
    """Bundled registry with mock contract addresses."""
    return ledger.deploy(AssetRegistry.load())


@pytest.fixture
def zama(registry: AssetRegistry) -> AssetDescriptor:
    return registry.resolve("zama")


@pytest.fixture
def signer() -> LocalAccountSigner:
    return LocalAccountSigner.create()


@pytest.fixture
def other_signer() -> LocalAccountSigner:
    return LocalAccountSigner.create()


@pytest.fixture
def signer_provider(signer: LocalAccountSigner) -> StaticSignerProvider:
    return StaticSignerProvider(signer)


@pytest.fixture
def oracle(ledger: MockLedger, encryption_service: MockEncryptionService) -> DecryptionOracleClient:
    return DecryptionOracleClient(
        ledger,
        encryption_service,
        oracle_timeout_seconds=2,
        settlement_timeout_seconds=0.2,
        poll_interval_seconds=0.01,
    )


# =============================================================================
# Orchestrator
# =============================================================================

def make_orchestrator(
    registry: AssetRegistry,
    ledger: MockLedger,
    service: MockEncryptionService,
    oracle: DecryptionOracleClient,
    signer_provider: StaticSignerProvider,
    **kwargs,
) -> BridgeOrchestrator:
    return BridgeOrchestrator(
        registry=registry,
        ledger=ledger,
        encryption=EncryptionClient(service, timeout_seconds=2),
        authorization=AuthorizationSigner(service, timeout_seconds=2),
        oracle=oracle,
        signer_provider=signer_provider,
        cache=BalanceCache(default_ttl=30),
        confirmation_timeout_seconds=2,
        call_timeout_seconds=2,
        **kwargs,
    )


@pytest_asyncio.fixture
async def orchestrator(
    registry: AssetRegistry,
    ledger: MockLedger,
    encryption_service: MockEncryptionService,
    oracle: DecryptionOracleClient,
    signer_provider: StaticSignerProvider,
) -> BridgeOrchestrator:
    """Orchestrator with a ready encryption service and a bound signer."""
    orchestrator = make_orchestrator(registry, ledger, encryption_service, oracle, signer_provider)
    await orchestrator.initialize()
    return orchestrator


@pytest.fixture
def orchestrator_factory(
    registry: AssetRegistry,
    ledger: MockLedger,
    encryption_service: MockEncryptionService,
    oracle: DecryptionOracleClient,
    signer_provider: StaticSignerProvider,
):
    """Build orchestrators over the shared collaborators with extra options."""
    def factory(**kwargs) -> BridgeOrchestrator:
        return make_orchestrator(registry, ledger, encryption_service, oracle, signer_provider, **kwargs)
    return factory
