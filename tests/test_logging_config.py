from confidential_bridge.logging_config import redact_secrets


def test_secret_fields_are_masked():
    event = {"event": "signed", "private_key": "0xdead", "keypair": object(), "holder": "0xabc"}

    redacted = redact_secrets(None, "info", event)

    assert redacted["private_key"] == "***"
    assert redacted["keypair"] == "***"
    assert redacted["holder"] == "0xabc"


def test_events_without_secrets_pass_through():
    event = {"event": "wrapped", "asset": "zama"}
    assert redact_secrets(None, "info", dict(event)) == event
