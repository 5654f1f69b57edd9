"""
Node Integration Layer.

Provides abstracted access to chain data and transaction submission.
"""

from eoa_batcher.node.interface import NodeInterface
from eoa_batcher.node.jsonrpc import JsonRpcAdapter

__all__ = [
    "NodeInterface",
    "JsonRpcAdapter",
]
