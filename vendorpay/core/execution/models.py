"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


MAX_LAMPORTS = 2**64 - 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionStatus(str, Enum):
    """Outcome reported to callers. Timeouts raise TransactionTimeoutError instead."""
    PENDING = "pending"          # Submitted, outcome not known yet
    CONFIRMED = "confirmed"      # Ledger accepted and confirmed the transfer
    FAILED = "failed"            # Ledger processed and rejected the transfer
    CANCELLED = "cancelled"      # Caller stopped waiting, may still land


class ExecutionState(str, Enum):
    """Per-transaction lifecycle inside the executor."""
    BUILT = "built"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class LedgerState(str, Enum):
    """Status reported by the ledger for a signature."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class BuyRequest:
    """A request to pay a whitelisted vendor."""
    amount: int                                 # Smallest currency unit (lamports)
    vendor: str                                 # Vendor wallet id
    buyer: str = field(repr=False)              # Buyer keypair material, never logged


@dataclass(frozen=True)
class Transaction:
    """A value transfer ready to hand to the ledger client."""
    tx_id: str                                  # Internal tracking ID
    payer: str = field(repr=False)              # Buyer identity material
    payee: str = ""                             # Vendor wallet id
    amount: int = 0
    freshness_token: str = ""                   # Recent blockhash
    attempt: int = 1
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class SignatureStatus:
    """Answer to a confirm() call."""
    signature: str
    state: LedgerState
    error: Optional[str] = None
    slot: Optional[int] = None
    confirmations: Optional[int] = None


@dataclass
class TransactionResult:
    """Result of a transaction execution."""
    tx_id: str
    signature: str
    status: TransactionStatus = TransactionStatus.PENDING
    error: Optional[str] = None
    attempts: int = 1
    slot: Optional[int] = None

    submitted_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED

    @property
    def is_final(self) -> bool:
        # CANCELLED is final for the executor only; the transfer may still land
        return self.status != TransactionStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_id": self.tx_id,
            "signature": self.signature,
            "status": self.status.value,
            "error": self.error,
            "attempts": self.attempts,
            "slot": self.slot,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
        }
