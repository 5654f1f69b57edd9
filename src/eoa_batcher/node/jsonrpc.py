"""
JSON-RPC adapter for node integration.

Provides chain access over a standard Ethereum JSON-RPC endpoint.
"""

import asyncio
import itertools
from typing import Any, List, Optional

import httpx
import structlog
from eth_utils import to_bytes, to_checksum_address, to_hex, to_int

from eoa_batcher.config import BatcherConfig, get_config
from eoa_batcher.node.interface import (
    FeeData,
    JsonRpcError,
    NodeConnectionError,
    NodeInterface,
    ReceiptTimeoutError,
    TransactionReceipt,
    TransactionSubmitError,
)

logger = structlog.get_logger(__name__)


class JsonRpcAdapter(NodeInterface):
    """
    JSON-RPC adapter.

    Implements the NodeInterface with eth_* calls over HTTP.
    """

    def __init__(
        self,
        config: Optional[BatcherConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the JSON-RPC adapter.

        Args:
            config: Batcher configuration. Uses global config if not provided.
            transport: Custom httpx transport (used by tests)
        """
        self.config = config or get_config()
        self.rpc_url = self.config.rpc_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Establish connection (create HTTP client)."""
        if self._client is not None:
            return

        if not self.rpc_url:
            raise NodeConnectionError("RPC URL not configured")

        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=self.config.rpc_timeout_seconds,
            transport=self._transport,
        )

        # Test connection
        try:
            chain_id = await self.get_chain_id()
        except (NodeConnectionError, JsonRpcError):
            await self._client.aclose()
            self._client = None
            raise

        logger.info("rpc_connected", rpc_url=self.rpc_url, chain_id=chain_id)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("rpc_disconnected")

    async def _request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Make a JSON-RPC request and return its result."""
        if not self._client:
            await self.connect()

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
        except httpx.RequestError as e:
            logger.error("rpc_request_error", method=method, error=str(e))
            raise NodeConnectionError(f"JSON-RPC request failed: {e}")

        if response.status_code != 200:
            logger.error(
                "rpc_request_failed",
                method=method,
                status=response.status_code,
                error=response.text,
            )
            raise NodeConnectionError(f"JSON-RPC HTTP error {response.status_code}: {response.text}")

        body = response.json()
        error = body.get("error")
        if error:
            logger.debug("rpc_error_response", method=method, error=error)
            raise JsonRpcError(
                error.get("message", "unknown error"),
                code=error.get("code"),
                data=error.get("data"),
            )

        return body.get("result")

    async def get_chain_id(self) -> int:
        """Get the chain ID."""
        return to_int(hexstr=await self._request("eth_chainId"))

    async def get_code(self, address: str) -> bytes:
        """Get the code at an address."""
        result = await self._request("eth_getCode", [to_checksum_address(address), "latest"])
        return to_bytes(hexstr=result or "0x")

    async def get_transaction_count(self, address: str) -> int:
        """Get the nonce of an account at the latest block."""
        result = await self._request(
            "eth_getTransactionCount",
            [to_checksum_address(address), "latest"],
        )
        return to_int(hexstr=result)

    async def get_fee_data(self) -> FeeData:
        """
        Quote fees for the next block.

        Max fee is twice the latest base fee plus the priority fee. Chains
        without a base fee fall back to the legacy gas price.
        """
        block = await self._request("eth_getBlockByNumber", ["latest", False])
        base_fee = block.get("baseFeePerGas") if block else None

        if base_fee is None:
            gas_price = to_int(hexstr=await self._request("eth_gasPrice"))
            return FeeData(max_fee_per_gas=gas_price, max_priority_fee_per_gas=gas_price)

        priority_fee = to_int(hexstr=await self._request("eth_maxPriorityFeePerGas"))
        return FeeData(
            max_fee_per_gas=2 * to_int(hexstr=base_fee) + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    async def call(self, to: str, data: bytes) -> bytes:
        """Execute eth_call against the latest block."""
        result = await self._request(
            "eth_call",
            [{"to": to_checksum_address(to), "data": to_hex(data)}, "latest"],
        )
        return to_bytes(hexstr=result or "0x")

    async def submit_transaction(self, raw_transaction: bytes) -> str:
        """Submit a signed transaction."""
        try:
            tx_hash = await self._request("eth_sendRawTransaction", [to_hex(raw_transaction)])
        except JsonRpcError as e:
            logger.error("tx_submit_failed", error=str(e), code=e.code)
            error_code = str(e.code) if e.code is not None else None
            raise TransactionSubmitError(str(e), error_code=error_code) from e

        logger.info("tx_submitted", tx_hash=tx_hash)
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """Get a transaction receipt."""
        data = await self._request("eth_getTransactionReceipt", [tx_hash])
        if not data:
            return None

        effective_gas_price = data.get("effectiveGasPrice")
        return TransactionReceipt(
            tx_hash=data["transactionHash"],
            status=to_int(hexstr=data["status"]),
            block_number=to_int(hexstr=data["blockNumber"]),
            gas_used=to_int(hexstr=data["gasUsed"]),
            effective_gas_price=to_int(hexstr=effective_gas_price) if effective_gas_price else None,
        )

    async def await_receipt(
        self,
        tx_hash: str,
        timeout_seconds: Optional[float] = None,
    ) -> TransactionReceipt:
        """Poll for a transaction receipt until it appears or the timeout passes."""
        timeout = timeout_seconds if timeout_seconds is not None else self.config.receipt_timeout_seconds
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                logger.info(
                    "tx_mined",
                    tx_hash=tx_hash,
                    block_number=receipt.block_number,
                    status=receipt.status,
                )
                return receipt

            if loop.time() >= deadline:
                logger.warning("tx_receipt_timeout", tx_hash=tx_hash, timeout=timeout)
                raise ReceiptTimeoutError(tx_hash, timeout)

            await asyncio.sleep(self.config.receipt_poll_interval_seconds)
