"""
EIP-712 payload for user decryption requests.
"""

from typing import Any, Dict, Iterable, List, Optional

from eth_utils import to_checksum_address

from ...config import settings
from ..abi import to_hex

PRIMARY_TYPE = "UserDecryptRequestVerification"

EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

USER_DECRYPT_FIELDS = [
    {"name": "publicKey", "type": "bytes"},
    {"name": "contractAddresses", "type": "address[]"},
    {"name": "startTimestamp", "type": "uint256"},
    {"name": "durationDays", "type": "uint256"},
]


def build_domain(
    name: Optional[str] = None,
    version: Optional[str] = None,
    chain_id: Optional[int] = None,
    verifying_contract: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "name": name or settings.decryption_domain_name,
        "version": version or settings.decryption_domain_version,
        "chainId": chain_id or settings.decryption_domain_chain_id,
        "verifyingContract": to_checksum_address(verifying_contract or settings.decryption_verifying_contract),
    }


def normalize_contracts(contract_addresses: Iterable[str]) -> List[str]:
    """Checksum and de-duplicate, keeping first-seen order."""
    seen = set()
    result = []
    for address in contract_addresses:
        checksummed = to_checksum_address(address)
        if checksummed not in seen:
            seen.add(checksummed)
            result.append(checksummed)
    return result


def build_user_decrypt_typed_data(
    public_key: bytes,
    contract_addresses: Iterable[str],
    start_timestamp: int,
    duration_days: int,
    domain: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Full EIP-712 message (types, domain, primary type, message)."""
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_FIELDS,
            PRIMARY_TYPE: USER_DECRYPT_FIELDS,
        },
        "primaryType": PRIMARY_TYPE,
        "domain": domain or build_domain(),
        "message": {
            "publicKey": to_hex(public_key),
            "contractAddresses": normalize_contracts(contract_addresses),
            "startTimestamp": int(start_timestamp),
            "durationDays": int(duration_days),
        },
    }
