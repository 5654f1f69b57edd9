"""
Token approval collection.

Users approve the delegated EOA as a spender of their ERC-20 tokens so
that batched transferFrom calls can move them.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import structlog

from eoa_batcher.config import BatcherConfig, get_config
from eoa_batcher.core.authorization import normalize_address
from eoa_batcher.core.calls import (
    decode_uint256,
    encode_allowance,
    encode_approve,
    encode_balance_of,
    format_units,
    parse_units,
)
from eoa_batcher.node.interface import (
    JsonRpcError,
    NodeConnectionError,
    NodeInterface,
    ReceiptTimeoutError,
    TransactionSubmitError,
)
from eoa_batcher.tx.builder import TransactionBuilder
from eoa_batcher.tx.signer import TransactionSigner

logger = structlog.get_logger(__name__)


class ApprovalStatus(str, Enum):
    """Outcome of one token approval."""
    ALREADY_APPROVED = "already_approved"
    APPROVED = "approved"
    FAILED = "failed"


@dataclass
class TokenApproval:
    """An allowance a user should grant."""

    token: str
    amount: int                  # base units
    symbol: str = ""
    decimals: int = 18


@dataclass
class UserApprovals:
    """A user's key and the approvals to collect from them."""

    private_key: str
    tokens: List[TokenApproval] = field(default_factory=list)


@dataclass
class ApprovalResult:
    """Result of processing one (user, token) approval."""

    user: str
    token: str
    symbol: str
    status: ApprovalStatus
    requested: int
    allowance: Optional[int] = None
    balance: Optional[int] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "user": self.user,
            "token": self.token,
            "symbol": self.symbol,
            "status": self.status.value,
            "requested": self.requested,
            "allowance": self.allowance,
            "balance": self.balance,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "error_message": self.error_message,
        }


def load_approvals(filepath: Union[str, Path]) -> List[UserApprovals]:
    """
    Parse a JSON file of user approvals.

    Expected format:
        [
            {
                "private_key": "0x...",
                "tokens": [
                    {"address": "0x8335...", "amount": "100", "symbol": "USDC", "decimals": 6}
                ]
            }
        ]

    Amounts are human-readable and converted with the token's decimals.
    """
    filepath = Path(filepath)
    with open(filepath, "r") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError("JSON must contain a list of user objects")

    users = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ValueError(f"Entry {i}: must be an object")
        if "private_key" not in entry:
            raise ValueError(f"Entry {i}: missing 'private_key' field")

        tokens = []
        for j, token in enumerate(entry.get("tokens", [])):
            if "address" not in token or "amount" not in token:
                raise ValueError(f"Entry {i}, token {j}: 'address' and 'amount' are required")
            try:
                decimals = int(token.get("decimals", 18))
                address = normalize_address(token["address"], "address")
                amount = parse_units(token["amount"], decimals)
            except ValueError as e:
                raise ValueError(f"Entry {i}, token {j}: {e}") from e

            tokens.append(TokenApproval(
                token=address,
                amount=amount,
                symbol=str(token.get("symbol", "")),
                decimals=decimals,
            ))

        users.append(UserApprovals(private_key=str(entry["private_key"]), tokens=tokens))

    return users


class ApprovalCollector:
    """
    Collects ERC-20 approvals for a spender.

    Each token is handled independently: a failure is recorded in that
    token's result and the remaining tokens are still processed.
    """

    def __init__(
        self,
        node: NodeInterface,
        builder: Optional[TransactionBuilder] = None,
        config: Optional[BatcherConfig] = None,
    ):
        self.config = config or get_config()
        self.node = node
        self.builder = builder or TransactionBuilder(node, self.config)

    async def get_allowance(self, token: str, owner: str, spender: str) -> int:
        return decode_uint256(await self.node.call(token, encode_allowance(owner, spender)))

    async def get_balance(self, token: str, owner: str) -> int:
        return decode_uint256(await self.node.call(token, encode_balance_of(owner)))

    async def collect(self, users: List[UserApprovals], spender: str) -> List[ApprovalResult]:
        """
        Collect approvals from every user for every listed token.

        Args:
            users: Users and their token approvals
            spender: The delegated EOA

        Returns:
            One result per (user, token)
        """
        logger.info("approvals_started", spender=spender, users=len(users))
        results = []

        for user in users:
            signer = TransactionSigner(self.config)
            signer.load_key(user.private_key)

            for approval in user.tokens:
                results.append(await self._approve(signer, approval, spender))

        approved = sum(1 for r in results if r.status == ApprovalStatus.APPROVED)
        failed = sum(1 for r in results if r.status == ApprovalStatus.FAILED)
        logger.info("approvals_complete", total=len(results), approved=approved, failed=failed)
        return results

    async def _approve(
        self,
        signer: TransactionSigner,
        approval: TokenApproval,
        spender: str,
    ) -> ApprovalResult:
        user = signer.address
        result = ApprovalResult(
            user=user,
            token=approval.token,
            symbol=approval.symbol,
            status=ApprovalStatus.FAILED,
            requested=approval.amount,
        )

        try:
            result.allowance = await self.get_allowance(approval.token, user, spender)
            result.balance = await self.get_balance(approval.token, user)
            logger.info(
                "token_balance",
                user=user,
                symbol=approval.symbol,
                balance=format_units(result.balance, approval.decimals),
            )

            if result.allowance >= approval.amount:
                result.status = ApprovalStatus.ALREADY_APPROVED
                logger.info(
                    "already_approved",
                    user=user,
                    symbol=approval.symbol,
                    allowance=format_units(result.allowance, approval.decimals),
                )
                return result

            envelope = await self.builder.build_call_transaction(
                sender=user,
                to=approval.token,
                data=encode_approve(spender, approval.amount),
                gas_limit=self.config.approval_gas_limit,
            )
            result.tx_hash = await self.node.submit_transaction(signer.sign_transaction(envelope))
            logger.info(
                "approval_submitted",
                user=user,
                symbol=approval.symbol,
                amount=format_units(approval.amount, approval.decimals),
                tx_hash=result.tx_hash,
            )

            receipt = await self.node.await_receipt(result.tx_hash, self.config.receipt_timeout_seconds)
            result.block_number = receipt.block_number
            if not receipt.succeeded:
                result.error_message = "approve transaction reverted"
                logger.error("approval_reverted", user=user, symbol=approval.symbol, tx_hash=result.tx_hash)
                return result

            result.status = ApprovalStatus.APPROVED
            logger.info("approval_confirmed", user=user, symbol=approval.symbol, block_number=receipt.block_number)

        except (
            NodeConnectionError,
            JsonRpcError,
            TransactionSubmitError,
            ReceiptTimeoutError,
            ValueError,
        ) as e:
            result.error_message = str(e)
            logger.error("approval_failed", user=user, symbol=approval.symbol, error=str(e))

        return result
