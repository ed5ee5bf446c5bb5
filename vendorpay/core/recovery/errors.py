"""
Error Classification

Defines error types raised by ledger clients.
Errors are classified as recoverable (transient, can retry) or
unrecoverable (permanent, surfaced immediately).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    NETWORK = "network"                      # Network/connectivity issues
    RATE_LIMIT = "rate_limit"                # RPC rate limits
    TIMEOUT = "timeout"                      # Ledger call timed out
    EXPIRED_TOKEN = "expired_token"          # Freshness token (blockhash) no longer valid
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INVALID_SIGNATURE = "invalid_signature"  # Bad keypair or signature
    REJECTED = "rejected"                    # Ledger refused the transaction
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    retry_after_seconds: Optional[float] = None
    suggested_action: Optional[str] = None
    provider: Optional[str] = None
    signature: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """
    Base class for ledger errors that can be retried.

    These errors are typically transient:
    - Network issues
    - Rate limits
    - Timeouts
    - Expired freshness tokens
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.retry_after = retry_after
        self.context = context or ErrorContext(category=category, recoverable=True)


class UnrecoverableError(Exception):
    """
    Base class for ledger errors that must not be retried.

    - Insufficient funds
    - Invalid signatures or key material
    - Transactions rejected by the ledger
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)


class NetworkError(RecoverableError):
    """Network connectivity error."""

    def __init__(self, message: str = "Network error", provider: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            context=ErrorContext(
                category=ErrorCategory.NETWORK,
                recoverable=True,
                provider=provider,
                suggested_action="Retry with exponential backoff",
            ),
        )


class RateLimitError(RecoverableError):
    """RPC rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.RATE_LIMIT,
            retry_after=retry_after,
            context=ErrorContext(
                category=ErrorCategory.RATE_LIMIT,
                recoverable=True,
                retry_after_seconds=retry_after,
                provider=provider,
                suggested_action="Wait before retrying",
            ),
        )


class LedgerTimeoutError(RecoverableError):
    """A single ledger call did not answer in time."""

    def __init__(self, message: str = "Ledger call timed out", operation: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                suggested_action="Retry with backoff",
                details={"operation": operation} if operation else {},
            ),
        )


class ExpiredTokenError(RecoverableError):
    """The freshness token went stale before the ledger accepted the transaction."""

    def __init__(self, message: str = "Freshness token expired"):
        super().__init__(
            message,
            category=ErrorCategory.EXPIRED_TOKEN,
            context=ErrorContext(
                category=ErrorCategory.EXPIRED_TOKEN,
                recoverable=True,
                suggested_action="Rebuild with a fresh token",
            ),
        )


class InsufficientFundsError(UnrecoverableError):
    """Payer cannot cover the transfer."""

    def __init__(self, message: str = "Insufficient funds", payer: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.INSUFFICIENT_FUNDS,
            context=ErrorContext(
                category=ErrorCategory.INSUFFICIENT_FUNDS,
                recoverable=False,
                suggested_action="Fund the buyer wallet or reduce the amount",
                details={"payer": payer} if payer else {},
            ),
        )


class InvalidSignatureError(UnrecoverableError):
    """Key material or signature was rejected."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(
            message,
            category=ErrorCategory.INVALID_SIGNATURE,
            context=ErrorContext(
                category=ErrorCategory.INVALID_SIGNATURE,
                recoverable=False,
                suggested_action="Check the buyer keypair",
            ),
        )


class TransactionRejectedError(UnrecoverableError):
    """Ledger refused the transaction for a non-transient reason."""

    def __init__(
        self,
        message: str = "Transaction rejected",
        reason: Optional[str] = None,
        signature: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.REJECTED,
            context=ErrorContext(
                category=ErrorCategory.REJECTED,
                recoverable=False,
                signature=signature,
                suggested_action="Review transaction parameters",
                details={"reason": reason} if reason else {},
            ),
        )


_TRANSIENT_PATTERNS = {
    ErrorCategory.RATE_LIMIT: ("rate limit", "too many requests", "429", "throttl"),
    ErrorCategory.EXPIRED_TOKEN: ("blockhash not found", "block height exceeded", "blockhash expired"),
    ErrorCategory.NETWORK: ("connection", "network", "unreachable", "refused", "dns", "socket", "node is behind"),
    ErrorCategory.TIMEOUT: ("timeout", "timed out", "deadline"),
}

_PERMANENT_PATTERNS = {
    ErrorCategory.INSUFFICIENT_FUNDS: ("insufficient funds", "insufficient lamports", "attempt to debit"),
    ErrorCategory.INVALID_SIGNATURE: ("signature verification", "invalid signature", "invalid keypair"),
}


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Already-typed errors keep their own context. Untyped errors are
    matched on their message; anything unmatched is treated as a
    permanent rejection so a transfer is never resubmitted blindly.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context

    message = str(error).lower()

    # Permanent reasons first: "insufficient funds ... (simulation timeout)" must not retry
    for category, patterns in _PERMANENT_PATTERNS.items():
        if any(p in message for p in patterns):
            return ErrorContext(category=category, recoverable=False)

    for category, patterns in _TRANSIENT_PATTERNS.items():
        if any(p in message for p in patterns):
            return ErrorContext(
                category=category,
                recoverable=True,
                suggested_action="Retry with backoff",
            )

    return ErrorContext(
        category=ErrorCategory.REJECTED,
        recoverable=False,
        suggested_action="Review transaction parameters",
    )


def to_ledger_error(error: Exception) -> Exception:
    """Wrap an untyped exception into the matching recoverable/unrecoverable type."""
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error

    context = classify_error(error)
    if context.recoverable:
        return RecoverableError(str(error), category=context.category, context=context)
    return UnrecoverableError(str(error), category=context.category, context=context)
