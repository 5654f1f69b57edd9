"""
Transaction Builder - constructs delegation and batch transactions.

Handles the construction of typed transaction envelopes for the delegated account.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional

import structlog
from eth_utils import to_checksum_address, to_hex

from eoa_batcher.config import BatcherConfig, get_config
from eoa_batcher.core.authorization import AuthorizationListEntry
from eoa_batcher.node.interface import NodeInterface

logger = structlog.get_logger(__name__)


class TransactionType(IntEnum):
    """Typed transaction envelopes in use."""
    DYNAMIC_FEE = 0x02    # EIP-1559
    SET_CODE = 0x04       # EIP-7702


@dataclass
class TransactionEnvelope:
    """
    Unsigned transaction.

    An envelope with an authorization list is a set-code (type 4)
    transaction; otherwise it is a dynamic-fee (type 2) transaction.
    """

    chain_id: int
    nonce: int
    to: str
    gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    value: int = 0
    data: bytes = b""
    authorization_list: List[AuthorizationListEntry] = field(default_factory=list)

    @property
    def tx_type(self) -> TransactionType:
        if self.authorization_list:
            return TransactionType.SET_CODE
        return TransactionType.DYNAMIC_FEE

    def to_dict(self) -> dict:
        """Convert to the transaction dict accepted by eth-account."""
        tx = {
            "type": int(self.tx_type),
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "to": to_checksum_address(self.to),
            "value": self.value,
            "data": to_hex(self.data),
            "gas": self.gas,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }
        if self.authorization_list:
            tx["authorizationList"] = [entry.to_dict() for entry in self.authorization_list]
        return tx


class TransactionBuildError(Exception):
    """Raised when transaction construction fails."""
    pass


class TransactionBuilder:
    """
    Builds transaction envelopes for the delegated account.

    Nonce and fees are read from the node at build time, so an envelope
    should be signed and submitted right after it is built.
    """

    def __init__(
        self,
        node: NodeInterface,
        config: Optional[BatcherConfig] = None,
    ):
        """
        Initialize the transaction builder.

        Args:
            node: Node interface for nonce and fee queries
            config: Batcher configuration
        """
        self.node = node
        self.config = config or get_config()

    async def build_delegation_transaction(
        self,
        sender: str,
        authorization: AuthorizationListEntry,
    ) -> TransactionEnvelope:
        """
        Build a set-code transaction sent by the account to itself.

        Args:
            sender: The account being delegated
            authorization: Signed authorization for the account

        Returns:
            Unsigned type 4 envelope
        """
        if authorization.request.chain_id != self.config.chain_id:
            raise TransactionBuildError(
                f"Authorization chain ID {authorization.request.chain_id} "
                f"does not match configured chain ID {self.config.chain_id}"
            )

        envelope = await self._build(
            sender=sender,
            to=sender,
            data=b"",
            gas_limit=self.config.delegation_gas_limit,
        )
        envelope.authorization_list.append(authorization)

        logger.debug(
            "delegation_tx_built",
            sender=sender,
            implementation=authorization.request.implementation_address,
            nonce=envelope.nonce,
        )
        return envelope

    async def build_call_transaction(
        self,
        sender: str,
        to: str,
        data: bytes,
        gas_limit: int,
        value: int = 0,
    ) -> TransactionEnvelope:
        """
        Build a dynamic-fee contract call.

        Args:
            sender: Account sending the transaction
            to: Call target
            data: Calldata
            gas_limit: Gas limit
            value: Wei to send

        Returns:
            Unsigned type 2 envelope
        """
        envelope = await self._build(sender=sender, to=to, data=data, gas_limit=gas_limit, value=value)
        logger.debug("call_tx_built", sender=sender, to=to, nonce=envelope.nonce, size=len(data))
        return envelope

    async def _build(
        self,
        sender: str,
        to: str,
        data: bytes,
        gas_limit: int,
        value: int = 0,
    ) -> TransactionEnvelope:
        nonce = await self.node.get_transaction_count(sender)
        fees = await self.node.get_fee_data()

        return TransactionEnvelope(
            chain_id=self.config.chain_id,
            nonce=nonce,
            to=to,
            gas=gas_limit,
            max_fee_per_gas=fees.max_fee_per_gas,
            max_priority_fee_per_gas=fees.max_priority_fee_per_gas,
            value=value,
            data=data,
        )
