"""
Service-level error taxonomy.

Every failure that leaves the core is a ServiceError carrying a kind,
the stage it happened in and, once a transaction reached the ledger,
its signature.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    DUPLICATE_VENDOR = "duplicate_vendor"
    VENDOR_NOT_FOUND = "vendor_not_found"
    INVALID_AMOUNT = "invalid_amount"
    LEDGER_TRANSIENT = "ledger_transient"
    LEDGER_PERMANENT = "ledger_permanent"
    TIMED_OUT = "timed_out"

    @property
    def is_client_error(self) -> bool:
        return self in {
            ErrorKind.DUPLICATE_VENDOR,
            ErrorKind.VENDOR_NOT_FOUND,
            ErrorKind.INVALID_AMOUNT,
        }


class Stage(str, Enum):
    VALIDATE = "validate"
    BUILD = "build"
    SUBMIT = "submit"
    CONFIRM = "confirm"


class ServiceError(Exception):
    """Base class for errors surfaced to callers of the core."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        stage: Stage = Stage.VALIDATE,
        signature: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.stage = stage
        self.signature = signature

    def to_dict(self) -> dict:
        return {
            "error": self.kind.value,
            "message": self.message,
            "stage": self.stage.value,
            "signature": self.signature,
        }


class DuplicateVendorError(ServiceError):
    """A vendor with the same wallet id is already whitelisted."""

    def __init__(self, wallet_id: str):
        super().__init__(
            ErrorKind.DUPLICATE_VENDOR,
            f"vendor {wallet_id} is already whitelisted",
        )
        self.wallet_id = wallet_id


class BuyError(ServiceError):
    """Unified error for the buy flow."""
