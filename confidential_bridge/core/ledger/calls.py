"""
Calldata builders for the underlying (ERC20) and confidential (ERC7984 wrapper)
token contracts.
"""

from ..abi import encode_call

# Underlying token
BALANCE_OF = ("balanceOf", ("address",))
MINT = ("mint", ("address", "uint256"))
APPROVE = ("approve", ("address", "uint256"))

# Confidential token
CONFIDENTIAL_BALANCE_OF = ("confidentialBalanceOf", ("address",))
WRAP = ("wrap", ("address", "uint256"))
UNWRAP = ("unwrap", ("address", "address", "bytes32", "bytes"))


def build_balance_of(holder: str) -> str:
    return encode_call(*BALANCE_OF, [holder])


def build_confidential_balance_of(holder: str) -> str:
    return encode_call(*CONFIDENTIAL_BALANCE_OF, [holder])


def build_mint(to: str, amount: int) -> str:
    return encode_call(*MINT, [to, amount])


def build_approve(spender: str, amount: int) -> str:
    return encode_call(*APPROVE, [spender, amount])


def build_wrap(to: str, amount: int) -> str:
    return encode_call(*WRAP, [to, amount])


def build_unwrap(from_address: str, to: str, handle: bytes, proof: bytes) -> str:
    return encode_call(*UNWRAP, [from_address, to, handle, proof])
