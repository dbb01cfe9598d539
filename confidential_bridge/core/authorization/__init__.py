"""
Authorization Module

EIP-712 user decryption authorizations.
"""

from .signer import SIGNATURE_LENGTH, AuthorizationSigner
from .typed_data import PRIMARY_TYPE, build_domain, build_user_decrypt_typed_data

__all__ = [
    "AuthorizationSigner",
    "SIGNATURE_LENGTH",
    "PRIMARY_TYPE",
    "build_domain",
    "build_user_decrypt_typed_data",
]
