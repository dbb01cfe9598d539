"""
Minimal ABI encoding for the handful of calls and events the bridge uses.

All helpers work on hex strings; encoders return 64-char words without 0x.
"""

from __future__ import annotations

from typing import Any, List, Sequence, Tuple

from eth_utils import keccak, to_checksum_address

WORD_HEX = 64


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(strip_0x(value))


def selector(signature: str) -> str:
    return "0x" + keccak(text=signature)[:4].hex()


def event_topic(signature: str) -> str:
    return "0x" + keccak(text=signature).hex()


def encode_uint(value: int) -> str:
    if value < 0:
        raise ValueError("Value must be non-negative")
    if value >= 2**256:
        raise ValueError("Value does not fit in uint256")
    return format(value, "064x")


def encode_address(address: str) -> str:
    addr = strip_0x(address).lower()
    if len(addr) != 40:
        raise ValueError(f"Invalid address length: {address}")
    return addr.rjust(WORD_HEX, "0")


def encode_bytes32(value: bytes) -> str:
    if len(value) != 32:
        raise ValueError("bytes32 value must be exactly 32 bytes")
    return value.hex()


def encode_bytes4(value: bytes) -> str:
    if len(value) != 4:
        raise ValueError("bytes4 value must be exactly 4 bytes")
    return value.hex().ljust(WORD_HEX, "0")


def encode_bytes(data: bytes) -> str:
    """Length-prefixed, right-padded tail of a dynamic ``bytes`` value."""
    padded_len = ((len(data) + 31) // 32) * 32
    return encode_uint(len(data)) + data.hex().ljust(padded_len * 2, "0")


def encode_bytes32_array(items: Sequence[bytes]) -> str:
    return encode_uint(len(items)) + "".join(encode_bytes32(item) for item in items)


_STATIC_ENCODERS = {
    "address": encode_address,
    "uint256": encode_uint,
    "uint64": encode_uint,
    "bytes32": encode_bytes32,
    "bytes4": encode_bytes4,
}

_DYNAMIC_ENCODERS = {
    "bytes": encode_bytes,
    "bytes32[]": encode_bytes32_array,
}


def encode_arguments(types: Sequence[str], values: Sequence[Any]) -> str:
    """Head/tail encode a flat argument list (no nested tuples)."""
    if len(types) != len(values):
        raise ValueError("Argument count does not match type count")

    head_size = 32 * len(types)
    heads: List[str] = []
    tails: List[str] = []
    tail_offset = head_size

    for abi_type, value in zip(types, values):
        if abi_type in _STATIC_ENCODERS:
            heads.append(_STATIC_ENCODERS[abi_type](value))
        elif abi_type in _DYNAMIC_ENCODERS:
            tail = _DYNAMIC_ENCODERS[abi_type](value)
            heads.append(encode_uint(tail_offset))
            tails.append(tail)
            tail_offset += len(tail) // 2
        else:
            raise ValueError(f"Unsupported ABI type: {abi_type}")

    return "".join(heads) + "".join(tails)


def function_signature(name: str, types: Sequence[str]) -> str:
    return f"{name}({','.join(types)})"


def encode_call(name: str, types: Sequence[str], values: Sequence[Any]) -> str:
    """Build calldata: 4-byte selector followed by encoded arguments."""
    return selector(function_signature(name, types)) + encode_arguments(types, values)


# =============================================================================
# Decoding
# =============================================================================

def split_words(data: str) -> List[str]:
    body = strip_0x(data)
    if len(body) % WORD_HEX != 0:
        raise ValueError("ABI data is not a whole number of words")
    return [body[i:i + WORD_HEX] for i in range(0, len(body), WORD_HEX)]


def decode_uint(word: str) -> int:
    return int(word, 16)


def decode_address(word: str) -> str:
    if int(word[:24] or "0", 16) != 0:
        raise ValueError("Address word has non-zero padding")
    return to_checksum_address("0x" + word[24:])


def decode_bytes32(word: str) -> bytes:
    return bytes.fromhex(word)


def decode_bytes4(word: str) -> bytes:
    return bytes.fromhex(word[:8])


def decode_bytes32_array(words: List[str], offset_bytes: int) -> Tuple[bytes, ...]:
    if offset_bytes % 32 != 0:
        raise ValueError("Dynamic offset is not word aligned")
    start = offset_bytes // 32
    length = decode_uint(words[start])
    items = words[start + 1:start + 1 + length]
    if len(items) != length:
        raise ValueError("Array extends past the end of the data")
    return tuple(decode_bytes32(item) for item in items)
