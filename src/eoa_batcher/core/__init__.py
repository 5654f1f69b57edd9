"""
Core batcher components.

This module contains the delegation authorizer, call encoding and the
batch model. The flows built on them live in the delegation, approvals
and batcher modules.
"""

from eoa_batcher.core.authorization import (
    AuthorizationListEntry,
    AuthorizationRequest,
    DelegationStatus,
    InvalidInputError,
    InvalidKeyError,
    Signature,
)
from eoa_batcher.core.batch import Batch, BatchStatus, TokenTransfer
from eoa_batcher.core.calls import Call

__all__ = [
    "AuthorizationListEntry",
    "AuthorizationRequest",
    "Batch",
    "BatchStatus",
    "Call",
    "DelegationStatus",
    "InvalidInputError",
    "InvalidKeyError",
    "Signature",
    "TokenTransfer",
]
