"""
Buy service.

Facade used by the HTTP layer: checks the whitelist, builds the
transfer, runs it through the executor and folds every lower-layer
failure into a BuyError.
"""

import asyncio
from typing import Optional

import structlog

from ..errors import BuyError, ErrorKind, Stage
from ..execution.executor import (
    ExecutionError,
    LedgerRejectedError,
    RetriesExhaustedError,
    TransactionExecutor,
    TransactionTimeoutError,
)
from ..execution.models import MAX_LAMPORTS, BuyRequest, SignatureStatus, TransactionResult
from ..execution.tx_builder import InvalidAmountError, TransactionBuilder, UnknownVendorError
from ..vendors.registry import VendorRegistry


logger = structlog.stdlib.get_logger(__name__)


class BuyService:
    """
    Pays whitelisted vendors on behalf of buyers.

    A vendor missing from the registry or a zero amount is rejected
    before any ledger call is made.
    """

    def __init__(
        self,
        registry: VendorRegistry,
        builder: TransactionBuilder,
        executor: TransactionExecutor,
    ):
        self.registry = registry
        self.builder = builder
        self.executor = executor

    async def buy(
        self,
        buyer: str,
        vendor: str,
        amount: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult:
        """
        Pay ``amount`` lamports from ``buyer`` to a whitelisted ``vendor``.

        ``cancel_event`` is for programmatic callers: setting it stops
        confirmation polling and returns a CANCELLED result that carries
        the signature. The HTTP route does not pass one.

        Raises:
            BuyError: with kind, stage and, once submitted, the signature
        """
        log = logger.bind(vendor=vendor, amount=amount)

        if not self.registry.exists(vendor):
            log.info("buy_rejected", reason=ErrorKind.VENDOR_NOT_FOUND.value)
            raise BuyError(ErrorKind.VENDOR_NOT_FOUND, f"{vendor} is not whitelisted")
        if isinstance(amount, bool) or not isinstance(amount, int) or not 0 < amount <= MAX_LAMPORTS:
            log.info("buy_rejected", reason=ErrorKind.INVALID_AMOUNT.value)
            raise BuyError(ErrorKind.INVALID_AMOUNT, f"amount must be between 1 and {MAX_LAMPORTS}, got {amount}")

        request = BuyRequest(amount=amount, vendor=vendor, buyer=buyer)

        try:
            token = await self.executor.fetch_freshness_token()
            transaction = self.builder.build(request, token)
        except InvalidAmountError as e:
            raise BuyError(ErrorKind.INVALID_AMOUNT, str(e), stage=Stage.BUILD) from e
        except UnknownVendorError as e:
            raise BuyError(ErrorKind.VENDOR_NOT_FOUND, str(e), stage=Stage.BUILD) from e
        except ExecutionError as e:
            raise self._wrap(e) from e

        log = log.bind(tx_id=transaction.tx_id)
        log.info("buy_started")

        try:
            result = await self.executor.execute(transaction, cancel_event=cancel_event)
        except ExecutionError as e:
            raise self._wrap(e) from e

        log.info("buy_finished", status=result.status.value, signature=result.signature)
        return result

    async def status(self, signature: str) -> SignatureStatus:
        """Re-query a signature, e.g. after a timed-out or cancelled buy."""
        try:
            return await self.executor.status(signature)
        except ExecutionError as e:
            raise self._wrap(e) from e

    @staticmethod
    def _wrap(error: ExecutionError) -> BuyError:
        if isinstance(error, TransactionTimeoutError):
            kind = ErrorKind.TIMED_OUT
        elif isinstance(error, LedgerRejectedError):
            kind = ErrorKind.LEDGER_PERMANENT
        elif isinstance(error, RetriesExhaustedError):
            kind = ErrorKind.LEDGER_TRANSIENT
        else:
            kind = ErrorKind.LEDGER_PERMANENT

        logger.warning(
            "buy_failed",
            kind=kind.value,
            stage=error.stage.value,
            signature=error.signature,
            attempts=error.attempts,
            error=str(error),
        )
        return BuyError(kind, str(error), stage=error.stage, signature=error.signature)
