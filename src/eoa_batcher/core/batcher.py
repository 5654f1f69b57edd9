"""
Main Batcher orchestrator.

Coordinates delegation, approval collection and batch execution for one EOA.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from eoa_batcher.config import BatcherConfig, get_config
from eoa_batcher.core.approvals import ApprovalCollector, ApprovalResult, UserApprovals
from eoa_batcher.core.authorization import (
    DelegationStatus,
    InvalidInputError,
    delegated_address,
    verify_delegation,
)
from eoa_batcher.core.batch import Batch, TokenTransfer
from eoa_batcher.core.delegation import DelegationManager, DelegationResult
from eoa_batcher.node.interface import JsonRpcError, NodeConnectionError, NodeInterface
from eoa_batcher.node.jsonrpc import JsonRpcAdapter
from eoa_batcher.tx.builder import TransactionBuilder
from eoa_batcher.tx.signer import TransactionSigner

logger = structlog.get_logger(__name__)


class NotDelegatedError(Exception):
    """Raised when a batch is requested from an account that cannot execute it."""

    def __init__(self, account: str, code: bytes):
        code_hex = "0x" + code.hex()
        super().__init__(f"Account {account} is not delegated (code: {code_hex})")
        self.account = account
        self.code = code_hex


@dataclass
class FullRunReport:
    """Results of a complete delegation, approval and batch run."""

    delegation: DelegationResult
    approvals: List[ApprovalResult] = field(default_factory=list)
    batch: Optional[Batch] = None
    recipient_balances: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "delegation": self.delegation.to_dict(),
            "approvals": [a.to_dict() for a in self.approvals],
            "batch": self.batch.to_dict() if self.batch else None,
            "recipient_balances": self.recipient_balances,
        }


class Batcher:
    """
    Main batcher orchestrator.

    Coordinates all batcher components:
    - Node connection and chain ID check
    - Delegation of the EOA to the batch-execution implementation
    - Approval collection from users
    - Batched transferFrom execution through the delegated EOA

    Usage:
        ```python
        async with Batcher(config) as batcher:
            await batcher.setup_delegation()
            batch = await batcher.execute_batch_transfer(transfers)
        ```
    """

    def __init__(
        self,
        config: Optional[BatcherConfig] = None,
        node: Optional[NodeInterface] = None,
        signer: Optional[TransactionSigner] = None,
    ):
        """
        Initialize the batcher.

        Args:
            config: Batcher configuration
            node: Custom node interface (JSON-RPC adapter if not provided)
            signer: Signer for the EOA (loaded from config if not provided)
        """
        self.config = config or get_config()
        self.node = node or JsonRpcAdapter(self.config)
        self.signer = signer

        self._builder: Optional[TransactionBuilder] = None
        self._delegation: Optional[DelegationManager] = None
        self._approvals: Optional[ApprovalCollector] = None
        self._initialized = False

    async def __aenter__(self) -> "Batcher":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    @property
    def address(self) -> Optional[str]:
        return self.signer.address if self.signer else None

    async def initialize(self) -> None:
        """
        Connect to the node and set up components.

        Raises:
            InvalidInputError: If the node's chain ID differs from the configured one
        """
        if self._initialized:
            return

        await self.node.connect()

        try:
            chain_id = await self.node.get_chain_id()
            if chain_id != self.config.chain_id:
                raise InvalidInputError(
                    "chain_id",
                    f"configured {self.config.chain_id} but the node reports {chain_id}",
                )

            if self.signer is None:
                self.signer = TransactionSigner(self.config)
                if self.config.private_key:
                    self.signer.load_from_config()
        except Exception:
            await self.node.disconnect()
            raise

        self._builder = TransactionBuilder(self.node, self.config)
        self._delegation = DelegationManager(self.node, self.signer, self._builder, self.config)
        self._approvals = ApprovalCollector(self.node, self._builder, self.config)

        self._initialized = True
        logger.info("batcher_initialized", account=self.signer.address, chain_id=chain_id)

    async def shutdown(self) -> None:
        """Disconnect from the node."""
        await self.node.disconnect()
        self._initialized = False
        logger.info("batcher_shutdown")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    def _require_account(self) -> str:
        if not self.signer.is_loaded:
            raise RuntimeError("No signing key loaded")
        return self.signer.address

    async def check_delegation(self, account: Optional[str] = None) -> DelegationStatus:
        """Delegation status of an account (default: the batcher's EOA)."""
        await self._ensure_initialized()
        return await self._delegation.check(account or self._require_account())

    async def setup_delegation(self) -> DelegationResult:
        """Delegate the EOA to the configured implementation."""
        await self._ensure_initialized()
        return await self._delegation.setup_delegation()

    async def collect_approvals(
        self,
        users: List[UserApprovals],
        spender: Optional[str] = None,
    ) -> List[ApprovalResult]:
        """
        Collect token approvals for the delegated EOA.

        Args:
            users: Users and the approvals to request from them
            spender: Spender to approve (default: the batcher's EOA)
        """
        await self._ensure_initialized()
        return await self._approvals.collect(users, spender or self._require_account())

    async def execute_batch_transfer(self, transfers: List[TokenTransfer]) -> Batch:
        """
        Execute transfers in one executeBatch call on the delegated EOA.

        Args:
            transfers: Transfers in execution order

        Returns:
            The batch with its final status

        Raises:
            NotDelegatedError: If the EOA carries no delegation marker
        """
        await self._ensure_initialized()
        if not transfers:
            raise ValueError("No transfers to execute")

        account = self._require_account()
        code = await self.node.get_code(account)
        status = verify_delegation(code, self.config.smart_account_implementation)

        if status == DelegationStatus.NOT_DELEGATED:
            logger.error("account_not_delegated", account=account)
            raise NotDelegatedError(account, code)

        if status == DelegationStatus.DELEGATED_ELSEWHERE:
            current = delegated_address(code)
            if current is None:
                logger.error("account_has_contract_code", account=account)
                raise NotDelegatedError(account, code)
            logger.warning("delegated_to_other_implementation", account=account, implementation=current)

        batch = Batch(transfers=list(transfers))
        envelope = await self._builder.build_call_transaction(
            sender=account,
            to=account,
            data=batch.calldata(),
            gas_limit=self.config.batch_gas_limit,
        )

        logger.info("batch_executing", batch_id=batch.batch_id, transfers=batch.size)
        tx_hash = await self.node.submit_transaction(self.signer.sign_transaction(envelope))
        batch.mark_submitted(tx_hash)
        logger.info("batch_submitted", batch_id=batch.batch_id, tx_hash=tx_hash)

        receipt = await self.node.await_receipt(tx_hash, self.config.receipt_timeout_seconds)
        if receipt.succeeded:
            batch.mark_confirmed(receipt.block_number, receipt.gas_used)
            logger.info(
                "batch_confirmed",
                batch_id=batch.batch_id,
                block_number=receipt.block_number,
                gas_used=receipt.gas_used,
                gas_per_transfer=round(batch.average_gas_per_transfer),
            )
        else:
            batch.block_number = receipt.block_number
            batch.gas_used = receipt.gas_used
            batch.mark_failed("executeBatch transaction reverted")
            logger.error("batch_reverted", batch_id=batch.batch_id, tx_hash=tx_hash)

        return batch

    async def get_recipient_balances(self, transfers: List[TokenTransfer]) -> List[dict]:
        """
        Read the token balance of every distinct (token, recipient) pair.

        A balance that cannot be read is reported as None.
        """
        await self._ensure_initialized()

        balances = []
        seen = set()
        for transfer in transfers:
            key = (transfer.token.lower(), transfer.recipient.lower())
            if key in seen:
                continue
            seen.add(key)

            try:
                balance = await self._approvals.get_balance(transfer.token, transfer.recipient)
            except (JsonRpcError, NodeConnectionError, ValueError) as e:
                logger.warning(
                    "recipient_balance_unavailable",
                    token=transfer.token,
                    recipient=transfer.recipient,
                    error=str(e),
                )
                balance = None
            else:
                logger.info(
                    "recipient_balance",
                    token=transfer.token,
                    recipient=transfer.recipient,
                    balance=balance,
                )

            balances.append({
                "token": transfer.token,
                "recipient": transfer.recipient,
                "balance": balance,
            })

        return balances

    async def run_full_example(
        self,
        users: List[UserApprovals],
        transfers: List[TokenTransfer],
    ) -> FullRunReport:
        """
        Run delegation, approval collection and a batch transfer in order.

        The batch is skipped when delegation did not end in the expected state.
        After a confirmed batch the recipients' token balances are read back.
        """
        delegation = await self.setup_delegation()
        report = FullRunReport(delegation=delegation)

        if not delegation.succeeded:
            logger.warning("full_example_stopped", reason="delegation not verified")
            return report

        report.approvals = await self.collect_approvals(users)
        if transfers:
            report.batch = await self.execute_batch_transfer(transfers)
            if report.batch.succeeded:
                report.recipient_balances = await self.get_recipient_balances(transfers)

        return report
