"""
EOA Batcher

Delegates an externally-owned account to a batch-execution implementation
(EIP-7702 style) and uses the delegated account to execute many ERC-20
transfers in a single transaction.
"""

__version__ = "0.1.0"

from eoa_batcher.core.authorization import (
    AuthorizationRequest,
    DelegationStatus,
    Signature,
    build_authorization,
    hash_authorization,
    sign_authorization_hash,
    verify_delegation,
)
from eoa_batcher.core.batcher import Batcher

__all__ = [
    "AuthorizationRequest",
    "Batcher",
    "DelegationStatus",
    "Signature",
    "build_authorization",
    "hash_authorization",
    "sign_authorization_hash",
    "verify_delegation",
]
