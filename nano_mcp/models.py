"""Value objects exchanged between the gateway, the signer and the engines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ZERO_HASH = "0" * 64


@dataclass(slots=True)
class AccountState:
    """Ledger state of an account, read fresh before every mutating operation."""

    address: str
    frontier: str
    representative: str
    balance: int

    @property
    def opened(self) -> bool:
        return self.frontier != ZERO_HASH

    @classmethod
    def unopened(cls, address: str, representative: Optional[str] = None) -> "AccountState":
        return cls(
            address=address,
            frontier=ZERO_HASH,
            representative=representative or address,
            balance=0,
        )


@dataclass(slots=True)
class PendingBlock:
    hash: str
    amount: int = 0
    source: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"hash": self.hash, "amount": str(self.amount), "source": self.source}


@dataclass(slots=True, frozen=True)
class UnsignedBlockFields:
    """
    Fields of a state block before work and signature are attached.

    ``link`` is the pending block hash for open/receive and the recipient's
    public key for send. ``balance`` is the account balance after the block.
    """

    account: str
    previous: str
    representative: str
    balance: int
    link: str
    type: str = "state"


@dataclass(slots=True)
class SignedBlock:
    fields: UnsignedBlockFields
    subtype: str
    hash: str
    signature: str
    work: str

    def as_json_block(self) -> Dict[str, str]:
        """Render the block the way the node's ``process`` action expects it."""
        return {
            "type": self.fields.type,
            "account": self.fields.account,
            "previous": self.fields.previous,
            "representative": self.fields.representative,
            "balance": str(self.fields.balance),
            "link": self.fields.link,
            "signature": self.signature,
            "work": self.work,
        }


@dataclass(slots=True)
class TransactionResult:
    """Outcome of a single send or receive: either ``hash`` or ``error``."""

    success: bool
    hash: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, block_hash: str) -> "TransactionResult":
        return cls(success=True, hash=block_hash)

    @classmethod
    def failure(cls, error: str) -> "TransactionResult":
        return cls(success=False, error=error)

    def as_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "hash": self.hash}
        return {"success": False, "error": self.error}


@dataclass(slots=True)
class ReceiveBatchResult:
    processed: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def received_count(self) -> int:
        return len(self.processed)

    @classmethod
    def batch_failure(cls, error: str) -> "ReceiveBatchResult":
        return cls(error=error)

    def record_success(self, block: PendingBlock, result: Dict[str, Any]) -> None:
        self.processed.append({"hash": block.hash, "amount": str(block.amount), "result": result})

    def record_failure(self, block: PendingBlock, error: str) -> None:
        self.failed.append({"hash": block.hash, "amount": str(block.amount), "error": error})

    def as_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "receivedCount": self.received_count,
            "failedCount": len(self.failed),
            "processed": list(self.processed),
            "failed": list(self.failed),
        }
