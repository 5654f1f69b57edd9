"""
Delegation setup.

Delegates the batcher's EOA to the batch-execution implementation with a
set-code transaction and verifies the resulting on-chain code.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from eoa_batcher.config import BatcherConfig, get_config
from eoa_batcher.core.authorization import (
    DelegationStatus,
    build_authorization,
    delegated_address,
    delegation_marker_hex,
    verify_delegation,
)
from eoa_batcher.node.interface import NodeInterface, TransactionSubmitError
from eoa_batcher.tx.builder import TransactionBuilder
from eoa_batcher.tx.signer import TransactionSigner

logger = structlog.get_logger(__name__)


@dataclass
class DelegationResult:
    """
    Outcome of a delegation attempt.

    Attributes:
        account: The delegated EOA
        implementation_address: Target implementation
        initial_status: Status before any transaction was sent
        final_status: Status after the attempt
        tx_hash: Hash of the set-code transaction, if one was sent
        block_number: Block the transaction was mined in
        unexpected_code: Code found after submission when it is not the expected marker
    """

    account: str
    implementation_address: str
    initial_status: DelegationStatus
    final_status: DelegationStatus
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    unexpected_code: Optional[str] = None

    @property
    def already_delegated(self) -> bool:
        """No transaction was needed."""
        return self.tx_hash is None and self.final_status == DelegationStatus.DELEGATED

    @property
    def succeeded(self) -> bool:
        return self.final_status == DelegationStatus.DELEGATED

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "account": self.account,
            "implementation_address": self.implementation_address,
            "initial_status": self.initial_status.value,
            "final_status": self.final_status.value,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
            "unexpected_code": self.unexpected_code,
        }


class DelegationManager:
    """
    Sets up delegation for the signer's account.

    The authorization nonce is read right before signing and nothing is
    sent from the account between that read and submission. Concurrent
    transactions from the same account invalidate the authorization.
    """

    def __init__(
        self,
        node: NodeInterface,
        signer: TransactionSigner,
        builder: Optional[TransactionBuilder] = None,
        config: Optional[BatcherConfig] = None,
    ):
        self.config = config or get_config()
        self.node = node
        self.signer = signer
        self.builder = builder or TransactionBuilder(node, self.config)

    @property
    def implementation_address(self) -> str:
        return self.config.smart_account_implementation

    async def check(self, account: Optional[str] = None) -> DelegationStatus:
        """Delegation status of an account (default: the signer's)."""
        account = account or self.signer.address
        return await self.node.get_delegation_status(account, self.implementation_address)

    async def setup_delegation(self) -> DelegationResult:
        """
        Delegate the signer's account to the configured implementation.

        Returns:
            DelegationResult describing the outcome

        Raises:
            TransactionSubmitError: If the node rejects the transaction,
                including stale-nonce rejections
        """
        account = self.signer.address
        if account is None:
            raise RuntimeError("No signing key loaded")

        implementation = self.implementation_address
        logger.info(
            "delegation_setup_started",
            account=account,
            implementation=implementation,
            chain_id=self.config.chain_id,
        )

        current_code = await self.node.get_code(account)
        initial_status = verify_delegation(current_code, implementation)

        if initial_status == DelegationStatus.DELEGATED:
            logger.info("already_delegated", account=account, implementation=implementation)
            return DelegationResult(
                account=account,
                implementation_address=implementation,
                initial_status=initial_status,
                final_status=initial_status,
            )

        if initial_status == DelegationStatus.DELEGATED_ELSEWHERE:
            logger.warning(
                "redelegating_account",
                account=account,
                current_code="0x" + current_code.hex(),
                current_implementation=delegated_address(current_code),
            )

        nonce = await self.node.get_transaction_count(account)
        request = build_authorization(self.config.chain_id, implementation, nonce)
        authorization = self.signer.sign_authorization(request)

        envelope = await self.builder.build_delegation_transaction(account, authorization)
        raw_tx = self.signer.sign_transaction(envelope)

        try:
            tx_hash = await self.node.submit_transaction(raw_tx)
        except TransactionSubmitError as e:
            logger.error(
                "delegation_submit_failed",
                account=account,
                nonce=nonce,
                error=str(e),
                nonce_error=e.is_nonce_error,
            )
            raise

        logger.info("delegation_submitted", tx_hash=tx_hash, nonce=nonce)
        receipt = await self.node.await_receipt(tx_hash, self.config.receipt_timeout_seconds)
        logger.info("delegation_confirmed", tx_hash=tx_hash, block_number=receipt.block_number)

        new_code = await self.node.get_code(account)
        final_status = verify_delegation(new_code, implementation)

        result = DelegationResult(
            account=account,
            implementation_address=implementation,
            initial_status=initial_status,
            final_status=final_status,
            tx_hash=tx_hash,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
        )

        if final_status == DelegationStatus.DELEGATED:
            logger.info("delegation_verified", account=account, code=delegation_marker_hex(implementation))
        else:
            result.unexpected_code = "0x" + new_code.hex()
            logger.warning(
                "unexpected_code_after_delegation",
                account=account,
                code=result.unexpected_code,
                expected=delegation_marker_hex(implementation),
                receipt_status=receipt.status,
            )

        return result
