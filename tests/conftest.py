"""
Pytest configuration and shared fixtures for the test suite.
"""

from typing import Callable, Dict, List, Optional, Tuple

import pytest
from eth_utils import keccak, to_checksum_address

from eoa_batcher.config import BatcherConfig
from eoa_batcher.core.authorization import delegation_marker
from eoa_batcher.node.interface import (
    FeeData,
    NodeInterface,
    ReceiptTimeoutError,
    TransactionReceipt,
)
from eoa_batcher.tx.signer import TransactionSigner


# ============================================================================
# Constants
# ============================================================================

CHAIN_ID = 84532
IMPLEMENTATION = "0x000100abaad02f1cfc8bbe32bd5a564817339e72"

# Well-known test key, never funded on a real network.
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"

USER_PRIVATE_KEY = "0x" + "11" * 32


def generate_test_address(index: int = 0) -> str:
    """Generate a deterministic test address."""
    return to_checksum_address("0x" + f"{index + 1:040x}")


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config() -> BatcherConfig:
    """Create a test configuration."""
    return BatcherConfig(
        rpc_url="http://localhost:8545",
        chain_id=CHAIN_ID,
        private_key=TEST_PRIVATE_KEY,
        smart_account_implementation=IMPLEMENTATION,
        receipt_timeout_seconds=1.0,
        receipt_poll_interval_seconds=0.01,
        log_level="DEBUG",
    )


# ============================================================================
# Mock Node Interface
# ============================================================================

class MockNodeInterface(NodeInterface):
    """Mock node interface for testing."""

    def __init__(self, chain_id: int = CHAIN_ID):
        self.chain_id = chain_id
        self.codes: Dict[str, bytes] = {}
        self.nonces: Dict[str, int] = {}
        self.call_results: Dict[Tuple[str, bytes], bytes] = {}
        self.submitted_txs: List[bytes] = []
        self.receipts: Dict[str, TransactionReceipt] = {}
        self.receipt_status = 1
        self.gas_used = 50_000
        self.submit_error: Optional[Exception] = None
        self.on_submit: Optional[Callable[[bytes], None]] = None
        self.mine = True
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def get_code(self, address: str) -> bytes:
        return self.codes.get(address.lower(), b"")

    async def get_transaction_count(self, address: str) -> int:
        return self.nonces.get(address.lower(), 0)

    async def get_fee_data(self) -> FeeData:
        return FeeData(max_fee_per_gas=2_000_000_000, max_priority_fee_per_gas=1_000_000)

    async def call(self, to: str, data: bytes) -> bytes:
        return self.call_results.get((to.lower(), bytes(data[:4])), b"")

    async def submit_transaction(self, raw_transaction: bytes) -> str:
        if self.submit_error is not None:
            raise self.submit_error

        self.submitted_txs.append(raw_transaction)
        tx_hash = "0x" + keccak(raw_transaction).hex()
        if self.on_submit:
            self.on_submit(raw_transaction)
        if self.mine:
            self.receipts[tx_hash] = TransactionReceipt(
                tx_hash=tx_hash,
                status=self.receipt_status,
                block_number=1000 + len(self.submitted_txs),
                gas_used=self.gas_used,
            )
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        return self.receipts.get(tx_hash)

    async def await_receipt(
        self,
        tx_hash: str,
        timeout_seconds: Optional[float] = None,
    ) -> TransactionReceipt:
        receipt = self.receipts.get(tx_hash)
        if receipt is None:
            raise ReceiptTimeoutError(tx_hash, timeout_seconds or 0)
        return receipt

    def set_code(self, address: str, code: bytes) -> None:
        """Set the code at an address."""
        self.codes[address.lower()] = code

    def delegate(self, address: str, implementation: str = IMPLEMENTATION) -> None:
        """Simulate a delegation marker at an address."""
        self.set_code(address, delegation_marker(implementation))

    def set_call_result(self, to: str, selector: bytes, result: bytes) -> None:
        """Return `result` for calls to `to` whose calldata starts with `selector`."""
        self.call_results[(to.lower(), selector)] = result


@pytest.fixture
def mock_node() -> MockNodeInterface:
    """Create a mock node interface."""
    return MockNodeInterface()


# ============================================================================
# Test Signer
# ============================================================================

@pytest.fixture
def test_signer(test_config) -> TransactionSigner:
    """Create a signer with the well-known test key."""
    signer = TransactionSigner(test_config)
    signer.load_key(TEST_PRIVATE_KEY)
    return signer
