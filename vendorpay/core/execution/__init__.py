"""
Transaction Execution Layer

Provides the infrastructure for paying whitelisted vendors on a ledger:
- TransactionBuilder: Builds transfers from buy requests
- TransactionExecutor: Submits, retries and confirms transfers
- LedgerClient: Boundary interface implemented by ledger providers

Usage:
    from vendorpay.core.execution import (
        TransactionBuilder,
        TransactionExecutor,
        BuyRequest,
    )

    builder = TransactionBuilder(registry)
    executor = TransactionExecutor(ledger, builder)

    token = await executor.fetch_freshness_token()
    tx = builder.build(BuyRequest(amount=12312, vendor="1234324", buyer=keypair), token)
    result = await executor.execute(tx)
"""

from .models import (
    MAX_LAMPORTS,
    BuyRequest,
    ExecutionState,
    LedgerState,
    SignatureStatus,
    Transaction,
    TransactionResult,
    TransactionStatus,
)

from .ledger import LedgerClient

from .tx_builder import (
    BuildError,
    InvalidAmountError,
    TransactionBuilder,
    UnknownVendorError,
)

from .executor import (
    ExecutionError,
    ExecutorConfig,
    InvalidTransitionError,
    LedgerRejectedError,
    RetriesExhaustedError,
    TransactionExecutor,
    TransactionLifecycle,
    TransactionTimeoutError,
)

__all__ = [
    # Models
    "MAX_LAMPORTS",
    "BuyRequest",
    "ExecutionState",
    "LedgerState",
    "SignatureStatus",
    "Transaction",
    "TransactionResult",
    "TransactionStatus",
    # Ledger boundary
    "LedgerClient",
    # Transaction Builder
    "BuildError",
    "InvalidAmountError",
    "TransactionBuilder",
    "UnknownVendorError",
    # Executor
    "ExecutionError",
    "ExecutorConfig",
    "InvalidTransitionError",
    "LedgerRejectedError",
    "RetriesExhaustedError",
    "TransactionExecutor",
    "TransactionLifecycle",
    "TransactionTimeoutError",
]
