"""
Batch transfer model.

Represents a set of token transfers executed through the delegated account
in a single transaction.
"""

import csv
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from eoa_batcher.core.authorization import InvalidInputError, normalize_address
from eoa_batcher.core.calls import Call, encode_execute_batch, encode_transfer_from, parse_units


class BatchStatus(str, Enum):
    """Status of a batch."""
    PENDING = "pending"           # Built, not yet sent
    SUBMITTED = "submitted"       # Transaction submitted
    CONFIRMED = "confirmed"       # Transaction mined successfully
    FAILED = "failed"             # Reverted or rejected


@dataclass(frozen=True)
class TokenTransfer:
    """
    A transferFrom executed by the delegated account.

    The sender must have approved the delegated account for at least
    the amount.
    """

    token: str
    sender: str
    recipient: str
    amount: int                   # base units

    def to_call(self) -> Call:
        return Call(
            target=self.token,
            value=0,
            data=encode_transfer_from(self.sender, self.recipient, self.amount),
        )


@dataclass
class Batch:
    """
    A batch of transfers processed together.

    Attributes:
        batch_id: Unique identifier for the batch
        transfers: Transfers in execution order
        status: Current processing status
        transaction_hash: Hash of the submitted transaction
        block_number: Block the transaction was mined in
        gas_used: Gas consumed by the whole batch
    """

    batch_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    transfers: List[TokenTransfer] = field(default_factory=list)
    status: BatchStatus = BatchStatus.PENDING

    # Transaction info
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    # Timestamps
    created_at: datetime = field(default_factory=datetime.utcnow)
    submitted_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    error_message: Optional[str] = None

    @property
    def size(self) -> int:
        """Get the number of transfers in this batch."""
        return len(self.transfers)

    @property
    def is_empty(self) -> bool:
        return len(self.transfers) == 0

    @property
    def succeeded(self) -> bool:
        return self.status == BatchStatus.CONFIRMED

    @property
    def average_gas_per_transfer(self) -> Optional[float]:
        if self.gas_used is None or self.is_empty:
            return None
        return self.gas_used / self.size

    def calls(self) -> List[Call]:
        return [t.to_call() for t in self.transfers]

    def calldata(self) -> bytes:
        """executeBatch calldata for all transfers."""
        return encode_execute_batch(self.calls())

    def mark_submitted(self, tx_hash: str) -> None:
        self.status = BatchStatus.SUBMITTED
        self.transaction_hash = tx_hash
        self.submitted_at = datetime.utcnow()

    def mark_confirmed(self, block_number: int, gas_used: int) -> None:
        self.status = BatchStatus.CONFIRMED
        self.block_number = block_number
        self.gas_used = gas_used
        self.confirmed_at = datetime.utcnow()

    def mark_failed(self, error: str) -> None:
        self.status = BatchStatus.FAILED
        self.error_message = error

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "batch_id": self.batch_id,
            "status": self.status.value,
            "size": self.size,
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
            "average_gas_per_transfer": self.average_gas_per_transfer,
            "created_at": self.created_at.isoformat(),
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "error_message": self.error_message,
        }

    def __repr__(self) -> str:
        return f"Batch(id={self.batch_id[:8]}..., status={self.status.value}, size={self.size})"


def _make_transfer(row: dict, where: str) -> TokenTransfer:
    for key in ("token", "from", "to", "amount"):
        if not str(row.get(key, "")).strip():
            raise ValueError(f"{where}: missing '{key}'")

    addresses = {}
    for key in ("token", "from", "to"):
        value = str(row[key]).strip()
        try:
            addresses[key] = normalize_address(value, key)
        except InvalidInputError as e:
            raise ValueError(f"{where}: invalid address in '{key}': {value}") from e

    decimals = int(row.get("decimals") or 18)
    try:
        amount = parse_units(str(row["amount"]).strip(), decimals)
    except ValueError as e:
        raise ValueError(f"{where}: {e}") from e

    return TokenTransfer(
        token=addresses["token"],
        sender=addresses["from"],
        recipient=addresses["to"],
        amount=amount,
    )


def load_transfers_csv(filepath: Union[str, Path]) -> List[TokenTransfer]:
    """
    Parse a CSV file of transfers.

    Expected format:
        token,from,to,amount[,decimals]
        0x8335...2913,0xAb5801a7...,0x4E83362...,10,6
    """
    transfers = []
    with open(Path(filepath), "r", newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            raise ValueError("CSV file is empty or has no headers")

        for row_num, row in enumerate(reader, start=2):
            normalized = {k.strip().lower(): (v or "").strip() for k, v in row.items() if k}
            transfers.append(_make_transfer(normalized, f"Row {row_num}"))

    return transfers


def load_transfers_json(filepath: Union[str, Path]) -> List[TokenTransfer]:
    """
    Parse a JSON file of transfers.

    Expected format:
        [
            {"token": "0x8335...", "from": "0xAb58...", "to": "0x4E83...", "amount": "10", "decimals": 6}
        ]
    """
    with open(Path(filepath), "r") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError("JSON must contain a list of transfer objects")

    transfers = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ValueError(f"Entry {i}: must be an object")
        transfers.append(_make_transfer(entry, f"Entry {i}"))

    return transfers


def load_transfers(filepath: Union[str, Path]) -> List[TokenTransfer]:
    """Load transfers from a .json or .csv file."""
    filepath = Path(filepath)
    if filepath.suffix.lower() == ".json":
        return load_transfers_json(filepath)
    return load_transfers_csv(filepath)
