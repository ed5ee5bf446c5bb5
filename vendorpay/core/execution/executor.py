"""
Transaction executor for vendor transfers.

Handles the full lifecycle of a transfer:
- Submission with bounded retries for transient ledger failures
- Fresh freshness token and rebuilt payload on every retry
- Confirmation polling with exponential backoff and a deadline
- Cancellation and timeout reporting that keeps the signature
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, TypeVar

import structlog

from ..errors import Stage
from ..recovery.errors import (
    LedgerTimeoutError,
    RecoverableError,
    UnrecoverableError,
    to_ledger_error,
)
from ..recovery.strategies import RetryOutcome, RetryOutcomeKind, RetryPolicy, RetryStrategy
from .ledger import LedgerClient
from .models import (
    ExecutionState,
    LedgerState,
    SignatureStatus,
    Transaction,
    TransactionResult,
    TransactionStatus,
)
from .tx_builder import TransactionBuilder


T = TypeVar("T")

logger = structlog.stdlib.get_logger(__name__)


class ExecutionError(Exception):
    """Base exception for execution errors."""

    def __init__(
        self,
        message: str,
        stage: Stage,
        signature: Optional[str] = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.stage = stage
        self.signature = signature
        self.attempts = attempts


class LedgerRejectedError(ExecutionError):
    """Ledger refused the transaction or the request permanently."""
    pass


class RetriesExhaustedError(ExecutionError):
    """Transient ledger failures outlasted the retry policy."""
    pass


class TransactionTimeoutError(ExecutionError):
    """Confirmation budget elapsed. The transaction may still land."""

    def __init__(self, signature: str, tx_id: str, waited_seconds: float, attempts: int = 1):
        super().__init__(
            f"transaction {signature} not confirmed after {waited_seconds:.1f}s",
            stage=Stage.CONFIRM,
            signature=signature,
            attempts=attempts,
        )
        self.tx_id = tx_id
        self.waited_seconds = waited_seconds


class InvalidTransitionError(RuntimeError):
    """Executor tried to move a transaction through an illegal state change."""
    pass


@dataclass(frozen=True)
class ExecutorConfig:
    """Timing and retry settings for the executor."""
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    call_timeout_seconds: float = 10.0          # Any single ledger call
    confirmation_timeout_seconds: float = 60.0  # Whole confirmation wait
    poll_interval_seconds: float = 0.5
    poll_max_interval_seconds: float = 5.0
    poll_backoff_factor: float = 1.5


class TransactionLifecycle:
    """Built -> Submitted -> {Confirmed, Failed, TimedOut, Cancelled}."""

    TRANSITIONS: Dict[ExecutionState, Set[ExecutionState]] = {
        ExecutionState.BUILT: {ExecutionState.SUBMITTED},
        ExecutionState.SUBMITTED: {
            ExecutionState.CONFIRMED,
            ExecutionState.FAILED,
            ExecutionState.TIMED_OUT,
            ExecutionState.CANCELLED,
        },
    }

    def __init__(self, tx_id: str, log: Any = None):
        self.tx_id = tx_id
        self.state = ExecutionState.BUILT
        self.history: List[Tuple[ExecutionState, datetime]] = [
            (ExecutionState.BUILT, datetime.now(timezone.utc)),
        ]
        self._log = log or logger

    @property
    def is_terminal(self) -> bool:
        return self.state not in self.TRANSITIONS

    def advance(self, new_state: ExecutionState, **fields: Any) -> None:
        allowed = self.TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise InvalidTransitionError(
                f"{self.tx_id}: cannot move from {self.state.value} to {new_state.value}"
            )
        self._log.debug(
            "transaction_state",
            from_state=self.state.value,
            to_state=new_state.value,
            **fields,
        )
        self.state = new_state
        self.history.append((new_state, datetime.now(timezone.utc)))


Sleeper = Callable[[float], Awaitable[Any]]


class TransactionExecutor:
    """
    Submits transfers to a ledger and waits for their outcome.

    The executor never deduplicates: executing the same logical buy
    twice produces two transactions with two signatures.

    Usage:
        executor = TransactionExecutor(ledger, TransactionBuilder(registry))
        token = await executor.fetch_freshness_token()
        result = await executor.execute(builder.build(request, token))
    """

    def __init__(
        self,
        ledger: LedgerClient,
        builder: TransactionBuilder,
        config: Optional[ExecutorConfig] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.ledger = ledger
        self.builder = builder
        self.config = config or ExecutorConfig()
        self._sleep = sleep or asyncio.sleep
        self._retry = RetryStrategy(self.config.retry_policy, sleep=self._sleep)

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    async def _call(
        self,
        awaitable: Awaitable[T],
        operation: str,
        timeout: Optional[float] = None,
    ) -> T:
        """Run one ledger call under the per-call timeout."""
        limit = timeout if timeout is not None else self.config.call_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=limit)
        except asyncio.TimeoutError as e:
            raise LedgerTimeoutError(
                f"{operation} did not answer within {limit:.2f}s",
                operation=operation,
            ) from e

    def _raise_for_outcome(
        self,
        outcome: RetryOutcome,
        stage: Stage,
        operation: str,
    ) -> None:
        if outcome.kind == RetryOutcomeKind.PERMANENT_FAILURE:
            raise LedgerRejectedError(
                f"{operation} rejected: {outcome.error}",
                stage=stage,
                attempts=outcome.attempts,
            ) from outcome.error
        if outcome.kind == RetryOutcomeKind.RETRIES_EXHAUSTED:
            raise RetriesExhaustedError(
                f"{operation} failed after {outcome.attempts} attempts: {outcome.error}",
                stage=stage,
                attempts=outcome.attempts,
            ) from outcome.error

    async def fetch_freshness_token(self) -> str:
        """Fetch a freshness token, retrying transient failures."""

        async def fetch(attempt: int) -> str:
            return await self._call(self.ledger.freshness_token(), "freshness_token")

        outcome = await self._retry.run(fetch, operation_name="freshness_token")
        self._raise_for_outcome(outcome, Stage.BUILD, "freshness_token")
        return outcome.value

    async def status(self, signature: str) -> SignatureStatus:
        """Single status query, used to reconcile timed-out or cancelled transfers."""
        try:
            return await self._call(self.ledger.confirm(signature), "confirm")
        except Exception as e:
            error = to_ledger_error(e)
            if isinstance(error, RecoverableError):
                raise RetriesExhaustedError(
                    f"status query failed: {e}", stage=Stage.CONFIRM, signature=signature, attempts=1,
                ) from e
            raise LedgerRejectedError(
                f"status query rejected: {e}", stage=Stage.CONFIRM, signature=signature, attempts=1,
            ) from e

    async def execute(
        self,
        transaction: Transaction,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult:
        """
        Submit a transaction and wait for its outcome.

        Args:
            transaction: Built transaction (first attempt uses its token)
            cancel_event: Set by the caller to stop waiting for confirmation

        Returns:
            TransactionResult with status CONFIRMED, FAILED or CANCELLED

        Raises:
            LedgerRejectedError: permanent submit/confirm failure
            RetriesExhaustedError: transient submit failures outlasted the policy
            TransactionTimeoutError: confirmation budget elapsed (carries the signature)
        """
        log = logger.bind(tx_id=transaction.tx_id, vendor=transaction.payee, amount=transaction.amount)
        lifecycle = TransactionLifecycle(transaction.tx_id, log)

        signature, submitted, attempts = await self._submit(transaction, log)
        lifecycle.advance(ExecutionState.SUBMITTED, signature=signature, attempts=attempts)
        submitted_at = datetime.now(timezone.utc)
        log = log.bind(signature=signature)
        log.info("transaction_submitted", attempts=attempts, final_tx_id=submitted.tx_id)

        try:
            return await self._await_confirmation(
                submitted,
                signature,
                attempts,
                submitted_at,
                lifecycle,
                log,
                cancel_event,
            )
        except asyncio.CancelledError:
            # Already broadcast; it cannot be recalled, only reconciled later
            log.warning("confirmation_abandoned", reason="task_cancelled")
            raise

    async def _submit(self, transaction: Transaction, log: Any) -> Tuple[str, Transaction, int]:
        current = transaction

        async def attempt_submit(attempt: int) -> str:
            nonlocal current
            if attempt > 1:
                token = await self._call(self.ledger.freshness_token(), "freshness_token")
                current = self.builder.rebuild(transaction, token, attempt=attempt)
                log.info("transaction_rebuilt", attempt=attempt, new_tx_id=current.tx_id)
            return await self._call(self.ledger.submit(current), "submit")

        outcome = await self._retry.run(attempt_submit, operation_name="submit")
        self._raise_for_outcome(outcome, Stage.SUBMIT, "submit")
        return outcome.value, current, outcome.attempts

    async def _await_confirmation(
        self,
        transaction: Transaction,
        signature: str,
        attempts: int,
        submitted_at: datetime,
        lifecycle: TransactionLifecycle,
        log: Any,
        cancel_event: Optional[asyncio.Event],
    ) -> TransactionResult:
        cfg = self.config
        started = self._now()
        deadline = started + cfg.confirmation_timeout_seconds
        interval = cfg.poll_interval_seconds
        polls = 0

        def result(status: TransactionStatus, **extra: Any) -> TransactionResult:
            return TransactionResult(
                tx_id=transaction.tx_id,
                signature=signature,
                status=status,
                attempts=attempts,
                submitted_at=submitted_at,
                **extra,
            )

        while True:
            if cancel_event is not None and cancel_event.is_set():
                lifecycle.advance(ExecutionState.CANCELLED, polls=polls)
                log.warning("confirmation_cancelled", polls=polls)
                return result(TransactionStatus.CANCELLED, error="cancelled while awaiting confirmation")

            remaining = deadline - self._now()
            status = await self._poll(signature, min(cfg.call_timeout_seconds, max(remaining, 0.001)), log)
            polls += 1

            if status is not None and status.state == LedgerState.CONFIRMED:
                lifecycle.advance(ExecutionState.CONFIRMED, polls=polls, slot=status.slot)
                log.info("transaction_confirmed", polls=polls, slot=status.slot)
                return result(
                    TransactionStatus.CONFIRMED,
                    slot=status.slot,
                    confirmed_at=datetime.now(timezone.utc),
                )

            if status is not None and status.state == LedgerState.FAILED:
                lifecycle.advance(ExecutionState.FAILED, polls=polls, error=status.error)
                log.error("transaction_failed", polls=polls, error=status.error)
                return result(TransactionStatus.FAILED, error=status.error or "transaction failed", slot=status.slot)

            remaining = deadline - self._now()
            if remaining <= 0:
                waited = self._now() - started
                lifecycle.advance(ExecutionState.TIMED_OUT, polls=polls)
                log.error("confirmation_timed_out", polls=polls, waited_s=round(waited, 3))
                raise TransactionTimeoutError(signature, transaction.tx_id, waited, attempts=attempts)

            if await self._pause(min(interval, remaining), cancel_event):
                continue
            interval = min(interval * cfg.poll_backoff_factor, cfg.poll_max_interval_seconds)

    async def _poll(self, signature: str, timeout: float, log: Any) -> Optional[SignatureStatus]:
        """One confirm() call. Transient failures count as 'no news'."""
        try:
            return await self._call(self.ledger.confirm(signature), "confirm", timeout=timeout)
        except RecoverableError as e:
            log.warning("confirm_poll_failed", error=str(e), category=e.category.value)
            return None
        except UnrecoverableError as e:
            raise LedgerRejectedError(
                f"confirm rejected: {e}", stage=Stage.CONFIRM, signature=signature,
            ) from e
        except Exception as e:
            error = to_ledger_error(e)
            if isinstance(error, UnrecoverableError):
                raise LedgerRejectedError(
                    f"confirm rejected: {e}", stage=Stage.CONFIRM, signature=signature,
                ) from e
            log.warning("confirm_poll_failed", error=str(e), category=error.category.value)
            return None

    async def _pause(self, delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep between polls. Returns True if the caller cancelled meanwhile."""
        if cancel_event is None:
            await self._sleep(delay)
            return False
        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waiter.cancel()
        return cancel_event.is_set()
