"""
Error Recovery Module

Provides ledger error classification and the bounded retry loop used
for submitting transactions.
"""

from .errors import (
    ErrorCategory,
    ErrorContext,
    RecoverableError,
    UnrecoverableError,
    NetworkError,
    RateLimitError,
    LedgerTimeoutError,
    ExpiredTokenError,
    InsufficientFundsError,
    InvalidSignatureError,
    TransactionRejectedError,
    classify_error,
    to_ledger_error,
)
from .strategies import (
    RetryPolicy,
    RetryOutcome,
    RetryOutcomeKind,
    RetryStrategy,
)

__all__ = [
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "RecoverableError",
    "UnrecoverableError",
    "NetworkError",
    "RateLimitError",
    "LedgerTimeoutError",
    "ExpiredTokenError",
    "InsufficientFundsError",
    "InvalidSignatureError",
    "TransactionRejectedError",
    "classify_error",
    "to_ledger_error",
    # Strategies
    "RetryPolicy",
    "RetryOutcome",
    "RetryOutcomeKind",
    "RetryStrategy",
]
