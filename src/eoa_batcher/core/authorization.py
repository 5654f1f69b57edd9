"""
Delegation authorization.

Builds, hashes and signs the authorization that delegates an EOA to a
batch-execution implementation, and classifies on-chain code against the
delegation marker (0xef0100 followed by the implementation address).

Everything here is pure: no network access, no state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import (
    is_address,
    is_checksum_address,
    is_checksum_formatted_address,
    keccak,
    to_bytes,
    to_canonical_address,
    to_checksum_address,
)


DELEGATION_PREFIX = bytes.fromhex("ef0100")
DELEGATION_MARKER_LENGTH = len(DELEGATION_PREFIX) + 20

UINT256_MAX = 2**256 - 1

# (uint256 chainId, address implementation, uint256 nonce)
AUTHORIZATION_ABI_TYPES = ("uint256", "address", "uint256")

ZERO_ADDRESS = "0x" + "00" * 20


class AuthorizationError(Exception):
    """Base class for authorization failures."""
    pass


class InvalidInputError(AuthorizationError, ValueError):
    """Raised when an address, chain ID, nonce, digest or code value is malformed."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class InvalidKeyError(AuthorizationError):
    """Raised when a signing key cannot be used."""
    pass


class DelegationStatus(str, Enum):
    """Delegation state of an account relative to one implementation."""
    DELEGATED = "delegated"                        # Code is the marker for this implementation
    NOT_DELEGATED = "not_delegated"                # Empty code, plain EOA
    DELEGATED_ELSEWHERE = "delegated_elsewhere"    # Any other code


@dataclass(frozen=True)
class AuthorizationRequest:
    """
    Unsigned authorization tuple.

    Attributes:
        chain_id: Chain the authorization is valid on
        implementation_address: Checksummed address of the implementation
        nonce: Account nonce at signing time
    """

    chain_id: int
    implementation_address: str
    nonce: int

    def encode(self) -> bytes:
        """ABI-encode the tuple as (uint256, address, uint256)."""
        return encode(
            list(AUTHORIZATION_ABI_TYPES),
            [self.chain_id, self.implementation_address, self.nonce],
        )


@dataclass(frozen=True)
class Signature:
    """secp256k1 signature in (yParity, r, s) form."""

    y_parity: int
    r: int
    s: int

    @classmethod
    def from_vrs(cls, v: int, r: int, s: int) -> "Signature":
        """
        Normalize a signature carrying a raw parity, legacy (27/28)
        or EIP-155 v value.
        """
        if v in (0, 1):
            y_parity = v
        elif v in (27, 28):
            y_parity = v - 27
        elif v >= 35:
            y_parity = (v - 35) % 2
        else:
            raise InvalidInputError("v", f"unsupported recovery value {v}")

        return cls(y_parity=y_parity, r=r, s=s)

    @property
    def v(self) -> int:
        """Legacy recovery id (27/28)."""
        return 27 + self.y_parity

    @property
    def r_hex(self) -> str:
        return "0x" + self.r.to_bytes(32, "big").hex()

    @property
    def s_hex(self) -> str:
        return "0x" + self.s.to_bytes(32, "big").hex()

    def to_bytes(self) -> bytes:
        """65-byte r || s || yParity encoding."""
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([self.y_parity])


@dataclass(frozen=True)
class AuthorizationListEntry:
    """A signed authorization, ready for a set-code transaction's authorization list."""

    request: AuthorizationRequest
    signature: Signature

    def to_dict(self) -> dict:
        """Fields as expected in an authorizationList entry."""
        return {
            "chainId": self.request.chain_id,
            "address": self.request.implementation_address,
            "nonce": self.request.nonce,
            "yParity": self.signature.y_parity,
            "r": self.signature.r,
            "s": self.signature.s,
        }

    def to_json(self) -> dict:
        """JSON-friendly variant with hex-encoded r and s."""
        data = self.to_dict()
        data["r"] = self.signature.r_hex
        data["s"] = self.signature.s_hex
        return data


def _check_uint256(value: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(field, f"expected an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise InvalidInputError(field, f"{value} is outside the uint256 range")
    return value


def normalize_address(value: Union[str, bytes], field: str) -> str:
    """Validate an address and return it checksummed."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise InvalidInputError(field, f"expected 20 bytes, got {len(value)}")
        return to_checksum_address(bytes(value))

    if not isinstance(value, str) or not is_address(value):
        raise InvalidInputError(field, f"not a valid address: {value!r}")
    if is_checksum_formatted_address(value) and not is_checksum_address(value):
        raise InvalidInputError(field, f"invalid checksum: {value}")

    return to_checksum_address(value)


def _code_to_bytes(code: Union[str, bytes, None]) -> bytes:
    if code is None:
        return b""
    if isinstance(code, (bytes, bytearray)):
        return bytes(code)
    try:
        return to_bytes(hexstr=code)
    except ValueError as e:
        raise InvalidInputError("current_code", f"not a hex value: {code!r}") from e


def build_authorization(
    chain_id: int,
    implementation_address: Union[str, bytes],
    nonce: int,
) -> AuthorizationRequest:
    """
    Build an authorization request.

    The nonce must be the account's transaction count read immediately
    before signing; a stale nonce makes the authorization invalid on-chain.

    Raises:
        InvalidInputError: If any field is malformed
    """
    _check_uint256(chain_id, "chain_id")
    _check_uint256(nonce, "nonce")
    address = normalize_address(implementation_address, "implementation_address")
    if address == to_checksum_address(ZERO_ADDRESS):
        raise InvalidInputError("implementation_address", "must not be the zero address")

    return AuthorizationRequest(
        chain_id=chain_id,
        implementation_address=address,
        nonce=nonce,
    )


def hash_authorization(request: AuthorizationRequest) -> bytes:
    """keccak-256 of the ABI-encoded authorization tuple."""
    return keccak(request.encode())


def sign_authorization_hash(private_key: Union[str, bytes], digest: bytes) -> Signature:
    """
    Sign an authorization digest.

    The digest is signed as an EIP-191 personal message over its raw bytes.
    Signing is deterministic (RFC 6979), so the same key and digest always
    give the same signature.

    Raises:
        InvalidInputError: If the digest is not 32 bytes
        InvalidKeyError: If the private key is malformed
    """
    if not isinstance(digest, (bytes, bytearray)) or len(digest) != 32:
        raise InvalidInputError("digest", "expected a 32-byte digest")

    try:
        account = Account.from_key(private_key)
    except (ValueError, TypeError, KeyValidationError) as e:
        raise InvalidKeyError(f"Malformed private key: {e}") from e

    signed = account.sign_message(encode_defunct(primitive=bytes(digest)))
    return Signature.from_vrs(signed.v, signed.r, signed.s)


def recover_authorization_signer(digest: bytes, signature: Signature) -> str:
    """Recover the checksummed address that produced the signature."""
    return Account.recover_message(
        encode_defunct(primitive=bytes(digest)),
        vrs=(signature.v, signature.r, signature.s),
    )


def delegation_marker(implementation_address: Union[str, bytes]) -> bytes:
    """Code a delegated account carries for the given implementation."""
    address = normalize_address(implementation_address, "implementation_address")
    return DELEGATION_PREFIX + to_canonical_address(address)


def delegation_marker_hex(implementation_address: Union[str, bytes]) -> str:
    """Lowercase hex form of the delegation marker."""
    return "0x" + delegation_marker(implementation_address).hex()


def delegated_address(code: Union[str, bytes, None]) -> Optional[str]:
    """
    Implementation address a delegation marker points at.

    Returns:
        Checksummed address, or None if the code is not a delegation marker
    """
    code_bytes = _code_to_bytes(code)
    if len(code_bytes) != DELEGATION_MARKER_LENGTH or not code_bytes.startswith(DELEGATION_PREFIX):
        return None
    return to_checksum_address(code_bytes[len(DELEGATION_PREFIX):])


def verify_delegation(
    current_code: Union[str, bytes, None],
    implementation_address: Union[str, bytes],
) -> DelegationStatus:
    """
    Classify an account's code against the expected delegation marker.

    Hex input is compared case-insensitively.
    """
    if isinstance(implementation_address, str):
        implementation_address = implementation_address.lower()
    expected = delegation_marker(implementation_address)
    code_bytes = _code_to_bytes(current_code)

    if not code_bytes:
        return DelegationStatus.NOT_DELEGATED
    if code_bytes == expected:
        return DelegationStatus.DELEGATED
    return DelegationStatus.DELEGATED_ELSEWHERE
