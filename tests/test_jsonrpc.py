"""
Test suite for the JSON-RPC node adapter.

Requests are answered by an in-process httpx transport.
"""

import json
from typing import Callable, Dict, List

import httpx
import pytest

from eoa_batcher.core.authorization import DelegationStatus, delegation_marker_hex
from eoa_batcher.node.interface import (
    JsonRpcError,
    NodeConnectionError,
    ReceiptTimeoutError,
    TransactionSubmitError,
)
from eoa_batcher.node.jsonrpc import JsonRpcAdapter

from conftest import IMPLEMENTATION, TEST_ADDRESS


TX_HASH = "0x" + "ab" * 32


class FakeRpc:
    """Answers JSON-RPC requests from a table of per-method handlers."""

    def __init__(self):
        self.handlers: Dict[str, Callable[[list], dict]] = {
            "eth_chainId": lambda params: {"result": "0x14a34"},
        }
        self.requests: List[dict] = []

    def on(self, method: str, result=None, error=None) -> None:
        if error is not None:
            self.handlers[method] = lambda params: {"error": error}
        else:
            self.handlers[method] = lambda params: {"result": result}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)

        handler = self.handlers.get(payload["method"])
        if handler is None:
            body = {"error": {"code": -32601, "message": "method not found"}}
        else:
            body = handler(payload["params"])
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], **body})

    def params_of(self, method: str) -> list:
        return [r["params"] for r in self.requests if r["method"] == method]


@pytest.fixture
def rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def adapter(rpc, test_config) -> JsonRpcAdapter:
    return JsonRpcAdapter(test_config, transport=httpx.MockTransport(rpc))


# ============================================================================
# Test Connection
# ============================================================================

class TestConnection:
    """Tests for connecting to the endpoint."""

    @pytest.mark.asyncio
    async def test_connect_reads_chain_id(self, adapter, rpc):
        await adapter.connect()

        assert await adapter.get_chain_id() == 84532
        assert rpc.params_of("eth_chainId") == [[], []]
        await adapter.disconnect()

    @pytest.mark.asyncio
    async def test_missing_rpc_url(self, test_config):
        config = test_config.model_copy(update={"rpc_url": None})

        with pytest.raises(NodeConnectionError, match="not configured"):
            await JsonRpcAdapter(config).connect()

    @pytest.mark.asyncio
    async def test_http_error(self, test_config):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="unavailable"))
        adapter = JsonRpcAdapter(test_config, transport=transport)

        with pytest.raises(NodeConnectionError, match="503"):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_failed_connect_closes_client(self, test_config):
        """Test that a failed connect leaves no client behind and can be retried."""
        responses = [httpx.Response(503, text="unavailable")] * 2
        responses.append(httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x14a34"}))
        transport = httpx.MockTransport(lambda request: responses.pop(0))
        adapter = JsonRpcAdapter(test_config, transport=transport)

        with pytest.raises(NodeConnectionError):
            await adapter.connect()
        assert adapter._client is None

        with pytest.raises(NodeConnectionError):
            await adapter.connect()
        assert adapter._client is None

        await adapter.connect()
        assert adapter._client is not None
        await adapter.disconnect()

    @pytest.mark.asyncio
    async def test_transport_error(self, test_config):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        adapter = JsonRpcAdapter(test_config, transport=httpx.MockTransport(refuse))

        with pytest.raises(NodeConnectionError, match="connection refused"):
            await adapter.connect()


# ============================================================================
# Test Queries
# ============================================================================

class TestQueries:
    """Tests for read-only node queries."""

    @pytest.mark.asyncio
    async def test_get_code(self, adapter, rpc):
        rpc.on("eth_getCode", delegation_marker_hex(IMPLEMENTATION))

        code = await adapter.get_code(TEST_ADDRESS.lower())

        assert code.hex() == "ef0100" + IMPLEMENTATION[2:]
        assert rpc.params_of("eth_getCode") == [[TEST_ADDRESS, "latest"]]

    @pytest.mark.asyncio
    async def test_delegation_status(self, adapter, rpc):
        rpc.on("eth_getCode", "0x")
        assert await adapter.get_delegation_status(TEST_ADDRESS, IMPLEMENTATION) == DelegationStatus.NOT_DELEGATED

        rpc.on("eth_getCode", delegation_marker_hex(IMPLEMENTATION).upper().replace("0X", "0x"))
        assert await adapter.get_delegation_status(TEST_ADDRESS, IMPLEMENTATION) == DelegationStatus.DELEGATED

    @pytest.mark.asyncio
    async def test_get_transaction_count(self, adapter, rpc):
        rpc.on("eth_getTransactionCount", "0x1f")
        assert await adapter.get_transaction_count(TEST_ADDRESS) == 31

    @pytest.mark.asyncio
    async def test_call(self, adapter, rpc):
        rpc.on("eth_call", "0x" + "00" * 31 + "06")

        result = await adapter.call(TEST_ADDRESS, bytes.fromhex("313ce567"))

        assert int.from_bytes(result, "big") == 6
        (params,) = rpc.params_of("eth_call")
        assert params == [{"to": TEST_ADDRESS, "data": "0x313ce567"}, "latest"]

    @pytest.mark.asyncio
    async def test_rpc_error(self, adapter, rpc):
        rpc.on("eth_call", error={"code": 3, "message": "execution reverted", "data": "0x"})

        with pytest.raises(JsonRpcError) as exc_info:
            await adapter.call(TEST_ADDRESS, b"")

        assert exc_info.value.code == 3
        assert str(exc_info.value) == "execution reverted"


# ============================================================================
# Test Fee Data
# ============================================================================

class TestFeeData:
    """Tests for fee quoting."""

    @pytest.mark.asyncio
    async def test_dynamic_fees(self, adapter, rpc):
        rpc.on("eth_getBlockByNumber", {"number": "0x10", "baseFeePerGas": hex(1_000_000)})
        rpc.on("eth_maxPriorityFeePerGas", hex(50_000))

        fees = await adapter.get_fee_data()

        assert fees.max_priority_fee_per_gas == 50_000
        assert fees.max_fee_per_gas == 2 * 1_000_000 + 50_000

    @pytest.mark.asyncio
    async def test_legacy_gas_price(self, adapter, rpc):
        rpc.on("eth_getBlockByNumber", {"number": "0x10"})
        rpc.on("eth_gasPrice", hex(7_000_000))

        fees = await adapter.get_fee_data()

        assert fees.max_fee_per_gas == 7_000_000
        assert fees.max_priority_fee_per_gas == 7_000_000


# ============================================================================
# Test Submission and Receipts
# ============================================================================

class TestSubmission:
    """Tests for transaction submission and receipt polling."""

    @pytest.mark.asyncio
    async def test_submit(self, adapter, rpc):
        rpc.on("eth_sendRawTransaction", TX_HASH)

        assert await adapter.submit_transaction(b"\x02\x01") == TX_HASH
        assert rpc.params_of("eth_sendRawTransaction") == [["0x0201"]]

    @pytest.mark.asyncio
    async def test_submit_rejected(self, adapter, rpc):
        """Test that a node rejection keeps its message and code."""
        rpc.on("eth_sendRawTransaction", error={"code": -32000, "message": "nonce too low"})

        with pytest.raises(TransactionSubmitError) as exc_info:
            await adapter.submit_transaction(b"\x04")

        assert str(exc_info.value) == "nonce too low"
        assert exc_info.value.error_code == "-32000"
        assert exc_info.value.is_nonce_error is True

    @pytest.mark.asyncio
    async def test_await_receipt_polls(self, adapter, rpc):
        """Test that polling continues until the receipt appears."""
        answers = iter([None, None, {
            "transactionHash": TX_HASH,
            "status": "0x1",
            "blockNumber": "0x64",
            "gasUsed": "0x5208",
            "effectiveGasPrice": "0x3b9aca00",
        }])
        rpc.handlers["eth_getTransactionReceipt"] = lambda params: {"result": next(answers)}

        receipt = await adapter.await_receipt(TX_HASH)

        assert receipt.succeeded is True
        assert receipt.block_number == 100
        assert receipt.gas_used == 21_000
        assert receipt.effective_gas_price == 10**9
        assert len(rpc.params_of("eth_getTransactionReceipt")) == 3

    @pytest.mark.asyncio
    async def test_reverted_receipt(self, adapter, rpc):
        rpc.on("eth_getTransactionReceipt", {
            "transactionHash": TX_HASH,
            "status": "0x0",
            "blockNumber": "0x1",
            "gasUsed": "0x1",
        })

        receipt = await adapter.get_transaction_receipt(TX_HASH)

        assert receipt.succeeded is False
        assert receipt.effective_gas_price is None

    @pytest.mark.asyncio
    async def test_await_receipt_timeout(self, adapter, rpc):
        rpc.on("eth_getTransactionReceipt", None)

        with pytest.raises(ReceiptTimeoutError) as exc_info:
            await adapter.await_receipt(TX_HASH, timeout_seconds=0.05)

        assert exc_info.value.tx_hash == TX_HASH
