"""
Oracle Module

Decryption oracle request correlation and user decryption.
"""

from .client import DecryptionOracleClient
from .events import (
    DECRYPTION_REQUEST_SIGNATURE,
    DECRYPTION_REQUEST_TOPIC,
    DecryptionRequestEvent,
    decode_decryption_request,
    encode_decryption_request,
)

__all__ = [
    "DecryptionOracleClient",
    "DecryptionRequestEvent",
    "DECRYPTION_REQUEST_SIGNATURE",
    "DECRYPTION_REQUEST_TOPIC",
    "decode_decryption_request",
    "encode_decryption_request",
]
