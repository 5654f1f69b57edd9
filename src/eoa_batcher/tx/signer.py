"""
Transaction Signer - handles authorization and transaction signing.

Manages the account key and provides signing for authorizations and envelopes.
"""

from typing import Optional

import structlog
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys.exceptions import ValidationError as KeyValidationError

from eoa_batcher.config import BatcherConfig, get_config
from eoa_batcher.core.authorization import (
    AuthorizationListEntry,
    AuthorizationRequest,
    InvalidKeyError,
    hash_authorization,
    sign_authorization_hash,
)
from eoa_batcher.tx.builder import TransactionEnvelope

logger = structlog.get_logger(__name__)


class TransactionSigner:
    """
    Handles signing with an account key.

    Supports loading keys from:
    - A hex string
    - The PRIVATE_KEY setting

    Security note: In production, consider using a HSM or
    secure key management service.
    """

    def __init__(self, config: Optional[BatcherConfig] = None):
        """
        Initialize the transaction signer.

        Args:
            config: Batcher configuration
        """
        self.config = config or get_config()
        self._account: Optional[LocalAccount] = None

    def load_key(self, private_key: str) -> None:
        """
        Load a hex-encoded private key.

        Raises:
            InvalidKeyError: If the key is malformed
        """
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError, KeyValidationError) as e:
            raise InvalidKeyError(f"Malformed private key: {e}") from e

        logger.info("signing_key_loaded", address=self._account.address)

    def load_from_config(self) -> None:
        """Load the signing key from configuration."""
        if not self.config.private_key:
            raise ValueError("No private key configured")
        self.load_key(self.config.private_key)

    @property
    def address(self) -> Optional[str]:
        """Get the account's checksummed address."""
        return self._account.address if self._account else None

    @property
    def is_loaded(self) -> bool:
        """Check if a signing key is loaded."""
        return self._account is not None

    def _require_account(self) -> LocalAccount:
        if not self._account:
            raise RuntimeError("No signing key loaded")
        return self._account

    def sign_authorization(self, request: AuthorizationRequest) -> AuthorizationListEntry:
        """
        Hash and sign an authorization request.

        Args:
            request: The authorization to sign

        Returns:
            Signed authorization-list entry
        """
        account = self._require_account()
        digest = hash_authorization(request)
        signature = sign_authorization_hash(account.key, digest)

        logger.debug(
            "authorization_signed",
            digest="0x" + digest.hex(),
            chain_id=request.chain_id,
            nonce=request.nonce,
        )
        return AuthorizationListEntry(request=request, signature=signature)

    def sign_transaction(self, envelope: TransactionEnvelope) -> bytes:
        """
        Sign a transaction envelope.

        Args:
            envelope: The envelope to sign

        Returns:
            Serialized signed transaction
        """
        account = self._require_account()
        signed = account.sign_transaction(envelope.to_dict())

        logger.debug("transaction_signed", tx_hash="0x" + bytes(signed.hash).hex(), type=int(envelope.tx_type))
        return bytes(signed.raw_transaction)


def generate_test_key(config: Optional[BatcherConfig] = None) -> TransactionSigner:
    """
    Generate a new random signing key for testing.

    WARNING: Do not use in production. The key is not persisted.

    Returns:
        TransactionSigner with a new random key
    """
    signer = TransactionSigner(config)
    signer._account = Account.create()

    logger.warning("test_key_generated", address=signer.address)

    return signer
