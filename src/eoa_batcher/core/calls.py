"""
Call encoding for the delegated account.

ABI-encodes the ERC-20 calls the flows need and the executeBatch call the
batch-execution implementation exposes. The implementation itself is an
opaque contract; only its calldata layout is known here.
"""

from dataclasses import dataclass
from decimal import Decimal, Inexact, InvalidOperation, localcontext
from typing import List, Sequence, Union

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address


TRANSFER_FROM_SIGNATURE = "transferFrom(address,address,uint256)"
APPROVE_SIGNATURE = "approve(address,uint256)"
ALLOWANCE_SIGNATURE = "allowance(address,address)"
BALANCE_OF_SIGNATURE = "balanceOf(address)"
EXECUTE_BATCH_SIGNATURE = "executeBatch((address,uint256,bytes)[])"

TRANSFER_FROM_SELECTOR = function_signature_to_4byte_selector(TRANSFER_FROM_SIGNATURE)
APPROVE_SELECTOR = function_signature_to_4byte_selector(APPROVE_SIGNATURE)
ALLOWANCE_SELECTOR = function_signature_to_4byte_selector(ALLOWANCE_SIGNATURE)
BALANCE_OF_SELECTOR = function_signature_to_4byte_selector(BALANCE_OF_SIGNATURE)
EXECUTE_BATCH_SELECTOR = function_signature_to_4byte_selector(EXECUTE_BATCH_SIGNATURE)

UINT256_MAX = 2**256 - 1

# Decimal digits kept while scaling amounts; a uint256 has at most 78.
UNITS_PRECISION = 100


@dataclass(frozen=True)
class Call:
    """One call executed by the delegated account."""

    target: str
    value: int = 0
    data: bytes = b""

    def as_tuple(self) -> tuple:
        return (to_checksum_address(self.target), self.value, self.data)


def encode_transfer_from(sender: str, recipient: str, amount: int) -> bytes:
    """Calldata for ERC-20 transferFrom(from, to, amount)."""
    return TRANSFER_FROM_SELECTOR + encode(
        ["address", "address", "uint256"],
        [to_checksum_address(sender), to_checksum_address(recipient), amount],
    )


def encode_approve(spender: str, amount: int) -> bytes:
    """Calldata for ERC-20 approve(spender, amount)."""
    return APPROVE_SELECTOR + encode(
        ["address", "uint256"],
        [to_checksum_address(spender), amount],
    )


def encode_allowance(owner: str, spender: str) -> bytes:
    """Calldata for ERC-20 allowance(owner, spender)."""
    return ALLOWANCE_SELECTOR + encode(
        ["address", "address"],
        [to_checksum_address(owner), to_checksum_address(spender)],
    )


def encode_balance_of(account: str) -> bytes:
    """Calldata for ERC-20 balanceOf(account)."""
    return BALANCE_OF_SELECTOR + encode(["address"], [to_checksum_address(account)])


def encode_execute_batch(calls: Sequence[Call]) -> bytes:
    """Calldata for executeBatch((address target, uint256 value, bytes data)[])."""
    return EXECUTE_BATCH_SELECTOR + encode(
        ["(address,uint256,bytes)[]"],
        [[call.as_tuple() for call in calls]],
    )


def decode_execute_batch(data: bytes) -> List[Call]:
    """Inverse of encode_execute_batch."""
    if data[:4] != EXECUTE_BATCH_SELECTOR:
        raise ValueError("Calldata is not an executeBatch call")
    (entries,) = decode(["(address,uint256,bytes)[]"], data[4:])
    return [
        Call(target=to_checksum_address(target), value=value, data=payload)
        for target, value, payload in entries
    ]


def decode_uint256(result: bytes) -> int:
    """Decode a single uint256 return value."""
    if len(result) < 32:
        raise ValueError(f"Expected a uint256 return value, got {len(result)} bytes")
    (value,) = decode(["uint256"], result)
    return value


def parse_units(amount: Union[str, int, float, Decimal], decimals: int) -> int:
    """
    Convert a human-readable token amount to base units.

    Raises:
        ValueError: If the amount is malformed, negative or too precise
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    if value < 0:
        raise ValueError(f"Amount must not be negative, got {amount}")

    with localcontext() as ctx:
        ctx.prec = UNITS_PRECISION
        ctx.traps[Inexact] = True
        try:
            scaled = value.scaleb(decimals)
        except Inexact as e:
            raise ValueError(f"Amount {amount} has too many digits") from e
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {amount} has more than {decimals} decimal places")

    base_units = int(scaled)
    if base_units > UINT256_MAX:
        raise ValueError(f"Amount {amount} does not fit in uint256")
    return base_units


def format_units(value: int, decimals: int) -> str:
    """Convert base units to a human-readable amount."""
    with localcontext() as ctx:
        ctx.prec = UNITS_PRECISION
        return format(Decimal(value).scaleb(-decimals).normalize(), "f")
