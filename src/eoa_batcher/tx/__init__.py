"""
Transaction module.

Handles transaction construction and signing.
"""

from eoa_batcher.tx.builder import TransactionBuilder, TransactionBuildError, TransactionEnvelope
from eoa_batcher.tx.signer import TransactionSigner

__all__ = [
    "TransactionBuilder",
    "TransactionBuildError",
    "TransactionEnvelope",
    "TransactionSigner",
]
