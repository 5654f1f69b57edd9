"""
Abstract interface for chain access.

Defines the contract for blockchain access that all node adapters must implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from eoa_batcher.core.authorization import DelegationStatus, verify_delegation


@dataclass
class FeeData:
    """EIP-1559 fee quote."""
    max_fee_per_gas: int
    max_priority_fee_per_gas: int


@dataclass
class TransactionReceipt:
    """Outcome of a mined transaction."""
    tx_hash: str
    status: int                        # 1 = success, 0 = reverted
    block_number: int
    gas_used: int
    effective_gas_price: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class NodeInterface(ABC):
    """
    Abstract interface for chain access.

    This interface defines all blockchain operations needed by the batcher:
    - Account queries (code, nonce)
    - Read-only contract calls
    - Transaction submission
    - Receipt polling
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the node.

        Raises:
            NodeConnectionError: If connection cannot be established
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the node."""
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Chain ID reported by the node."""
        pass

    @abstractmethod
    async def get_code(self, address: str) -> bytes:
        """
        Get the code at an address.

        Returns:
            Code bytes; empty for a plain account
        """
        pass

    @abstractmethod
    async def get_transaction_count(self, address: str) -> int:
        """Get the current nonce of an account."""
        pass

    @abstractmethod
    async def get_fee_data(self) -> FeeData:
        """Get a fee quote for the next block."""
        pass

    @abstractmethod
    async def call(self, to: str, data: bytes) -> bytes:
        """
        Execute a read-only call against the latest block.

        Returns:
            Raw return data
        """
        pass

    @abstractmethod
    async def submit_transaction(self, raw_transaction: bytes) -> str:
        """
        Submit a signed transaction to the network.

        Args:
            raw_transaction: Signed, serialized transaction

        Returns:
            Transaction hash

        Raises:
            TransactionSubmitError: If the node rejects the transaction
        """
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """
        Get the receipt of a transaction.

        Returns:
            The receipt if the transaction is mined, None otherwise
        """
        pass

    @abstractmethod
    async def await_receipt(
        self,
        tx_hash: str,
        timeout_seconds: Optional[float] = None,
    ) -> TransactionReceipt:
        """
        Wait for a transaction to be mined.

        Args:
            tx_hash: Hash of the transaction to monitor
            timeout_seconds: Maximum time to wait

        Returns:
            The transaction receipt

        Raises:
            ReceiptTimeoutError: If no receipt appears within the timeout
        """
        pass

    async def get_delegation_status(
        self,
        address: str,
        implementation_address: str,
    ) -> DelegationStatus:
        """
        Classify the code at an account against a delegation target.

        Args:
            address: Account to inspect
            implementation_address: Expected implementation

        Returns:
            Delegation status of the account
        """
        code = await self.get_code(address)
        return verify_delegation(code, implementation_address)


class NodeConnectionError(Exception):
    """Raised when connection to node fails."""
    pass


class JsonRpcError(Exception):
    """Raised when the node answers a request with a JSON-RPC error object."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class TransactionSubmitError(Exception):
    """
    Raised when transaction submission fails.

    The node's message and error code are kept unchanged so callers can
    decide whether a retry with a fresh nonce makes sense.
    """

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code

    @property
    def is_nonce_error(self) -> bool:
        """Whether the node rejected the transaction over a nonce."""
        return "nonce" in str(self).lower()


class ReceiptTimeoutError(Exception):
    """Raised when a transaction is not mined within the allowed time."""

    def __init__(self, tx_hash: str, timeout_seconds: float):
        super().__init__(f"Transaction {tx_hash} not mined within {timeout_seconds}s")
        self.tx_hash = tx_hash
        self.timeout_seconds = timeout_seconds
