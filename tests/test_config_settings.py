from confidential_bridge.config import Settings


def test_signer_key_fallback_alias(monkeypatch):
    """Signer key should load from the deployment tooling variable when unset."""

    monkeypatch.setenv("SIGNER_PRIVATE_KEY", "")
    monkeypatch.setenv("PRIVATE_KEY", "0xabc")
    monkeypatch.delenv("DEPLOYER_PRIVATE_KEY", raising=False)

    settings = Settings()

    assert settings.signer_private_key == "0xabc"
    assert settings.has_signer_key is True


def test_signer_key_direct_env(monkeypatch):
    """Environment-provided signer key remains the primary source."""

    monkeypatch.setenv("SIGNER_PRIVATE_KEY", "0xprimary")
    monkeypatch.setenv("PRIVATE_KEY", "0xabc")

    settings = Settings()

    assert settings.signer_private_key == "0xprimary"


def test_no_signer_key(monkeypatch):
    monkeypatch.setenv("SIGNER_PRIVATE_KEY", "")
    monkeypatch.delenv("PRIVATE_KEY", raising=False)
    monkeypatch.delenv("DEPLOYER_PRIVATE_KEY", raising=False)

    assert Settings().has_signer_key is False


def test_amount_ceiling_follows_bit_width(monkeypatch):
    monkeypatch.setenv("CIPHERTEXT_BIT_WIDTH", "32")
    assert Settings().amount_ceiling == 2**32 - 1

    monkeypatch.delenv("CIPHERTEXT_BIT_WIDTH")
    assert Settings().amount_ceiling == 2**64 - 1


def test_reject_busy_sessions_flag(monkeypatch):
    monkeypatch.setenv("REJECT_BUSY_SESSIONS", "true")
    assert Settings().reject_busy_sessions is True
