"""
Tests for submission, retry and confirmation polling.
"""

import asyncio

import pytest

from vendorpay.core.errors import Stage
from vendorpay.core.execution import (
    BuyRequest,
    ExecutionState,
    InvalidTransitionError,
    LedgerRejectedError,
    LedgerState,
    RetriesExhaustedError,
    SignatureStatus,
    TransactionExecutor,
    TransactionLifecycle,
    TransactionStatus,
    TransactionTimeoutError,
)
from vendorpay.core.recovery import (
    ExpiredTokenError,
    InsufficientFundsError,
    InvalidSignatureError,
    NetworkError,
    RetryPolicy,
)

from ledger_fakes import FakeLedger, fast_config


async def built(executor: TransactionExecutor, amount: int = 12312):
    token = await executor.fetch_freshness_token()
    return executor.builder.build(BuyRequest(amount=amount, vendor="1234324", buyer="123234243"), token)


@pytest.mark.asyncio
async def test_confirms_immediately(executor, ledger):
    tx = await built(executor)

    result = await executor.execute(tx)

    assert result.status == TransactionStatus.CONFIRMED
    assert result.signature == "sig-1"
    assert result.attempts == 1
    assert result.slot == 42
    assert result.confirmed_at is not None
    assert len(ledger.submitted) == 1
    assert ledger.confirm_calls == ["sig-1"]


@pytest.mark.asyncio
async def test_polls_until_confirmed(builder):
    ledger = FakeLedger(confirm_replies=[LedgerState.PENDING, LedgerState.PENDING, LedgerState.CONFIRMED])
    executor = TransactionExecutor(ledger, builder, fast_config())

    result = await executor.execute(await built(executor))

    assert result.status == TransactionStatus.CONFIRMED
    assert len(ledger.confirm_calls) == 3


@pytest.mark.asyncio
async def test_transient_failures_retried_with_fresh_token(builder):
    ledger = FakeLedger(submit_replies=[NetworkError("reset"), ExpiredTokenError(), "sig-ok"])
    executor = TransactionExecutor(ledger, builder, fast_config())
    tx = await built(executor)

    result = await executor.execute(tx)

    assert result.status == TransactionStatus.CONFIRMED
    assert result.signature == "sig-ok"
    assert result.attempts == 3
    assert [t.freshness_token for t in ledger.submitted] == ["blockhash-1", "blockhash-2", "blockhash-3"]
    assert ledger.submitted[2].freshness_token != tx.freshness_token
    assert [t.attempt for t in ledger.submitted] == [1, 2, 3]
    assert len({t.tx_id for t in ledger.submitted}) == 3
    assert result.tx_id == ledger.submitted[2].tx_id
    assert ledger.confirm_calls == ["sig-ok"]


@pytest.mark.asyncio
async def test_permanent_failure_not_retried(builder):
    ledger = FakeLedger(submit_replies=[InsufficientFundsError()])
    executor = TransactionExecutor(ledger, builder, fast_config())

    with pytest.raises(LedgerRejectedError) as exc_info:
        await executor.execute(await built(executor))

    assert exc_info.value.stage == Stage.SUBMIT
    assert exc_info.value.attempts == 1
    assert isinstance(exc_info.value.__cause__, InsufficientFundsError)
    assert len(ledger.submitted) == 1
    assert ledger.confirm_calls == []


@pytest.mark.asyncio
async def test_retries_exhausted(builder):
    ledger = FakeLedger(submit_replies=[NetworkError()] * 3)
    executor = TransactionExecutor(ledger, builder, fast_config())

    with pytest.raises(RetriesExhaustedError) as exc_info:
        await executor.execute(await built(executor))

    assert exc_info.value.attempts == 3
    assert exc_info.value.stage == Stage.SUBMIT
    assert len(ledger.submitted) == 3
    assert ledger.confirm_calls == []


@pytest.mark.asyncio
async def test_confirmation_timeout_keeps_signature(builder):
    ledger = FakeLedger(confirm_replies=[LedgerState.PENDING])
    executor = TransactionExecutor(
        ledger,
        builder,
        fast_config(confirmation_timeout_seconds=0.05, poll_interval_seconds=0.005, poll_max_interval_seconds=0.01),
    )

    with pytest.raises(TransactionTimeoutError) as exc_info:
        await executor.execute(await built(executor))

    assert exc_info.value.signature == "sig-1"
    assert exc_info.value.stage == Stage.CONFIRM
    assert len(ledger.submitted) == 1
    assert len(ledger.confirm_calls) >= 2
    assert set(ledger.confirm_calls) == {"sig-1"}
    assert "timed_out" not in {status.value for status in TransactionStatus}


@pytest.mark.asyncio
async def test_ledger_reports_failure(builder):
    ledger = FakeLedger(confirm_replies=[LedgerState.FAILED])
    executor = TransactionExecutor(ledger, builder, fast_config())

    result = await executor.execute(await built(executor))

    assert result.status == TransactionStatus.FAILED
    assert result.signature == "sig-1"
    assert result.error == "InstructionError"


@pytest.mark.asyncio
async def test_transient_confirm_errors_keep_polling(builder):
    ledger = FakeLedger(confirm_replies=[NetworkError(), LedgerState.PENDING, LedgerState.CONFIRMED])
    executor = TransactionExecutor(ledger, builder, fast_config())

    result = await executor.execute(await built(executor))

    assert result.status == TransactionStatus.CONFIRMED
    assert len(ledger.confirm_calls) == 3


@pytest.mark.asyncio
async def test_permanent_confirm_error_carries_signature(builder):
    ledger = FakeLedger(confirm_replies=[InvalidSignatureError()])
    executor = TransactionExecutor(ledger, builder, fast_config())

    with pytest.raises(LedgerRejectedError) as exc_info:
        await executor.execute(await built(executor))

    assert exc_info.value.stage == Stage.CONFIRM
    assert exc_info.value.signature == "sig-1"


@pytest.mark.asyncio
async def test_cancel_event_stops_polling(builder):
    ledger = FakeLedger(confirm_replies=[LedgerState.PENDING])
    executor = TransactionExecutor(
        ledger,
        builder,
        fast_config(confirmation_timeout_seconds=5.0, poll_interval_seconds=0.01, poll_max_interval_seconds=0.01),
    )
    cancel = asyncio.Event()
    tx = await built(executor)

    task = asyncio.create_task(executor.execute(tx, cancel_event=cancel))
    while not ledger.confirm_calls:
        await asyncio.sleep(0.001)
    cancel.set()
    result = await asyncio.wait_for(task, timeout=1.0)

    assert result.status == TransactionStatus.CANCELLED
    assert result.signature == "sig-1"
    assert len(ledger.submitted) == 1


@pytest.mark.asyncio
async def test_task_cancellation_propagates(builder):
    ledger = FakeLedger(confirm_replies=[LedgerState.PENDING])
    executor = TransactionExecutor(
        ledger,
        builder,
        fast_config(confirmation_timeout_seconds=5.0, poll_interval_seconds=0.01),
    )
    task = asyncio.create_task(executor.execute(await built(executor)))
    while not ledger.confirm_calls:
        await asyncio.sleep(0.001)

    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(ledger.submitted) == 1


@pytest.mark.asyncio
async def test_slow_ledger_call_times_out(builder):
    class SlowLedger(FakeLedger):
        async def submit(self, transaction):
            self.submitted.append(transaction)
            await asyncio.sleep(1)
            return "never"

    ledger = SlowLedger()
    executor = TransactionExecutor(
        ledger,
        builder,
        fast_config(
            call_timeout_seconds=0.01,
            retry_policy=RetryPolicy(max_attempts=2, base_delay_seconds=0.0, jitter=False),
        ),
    )

    with pytest.raises(RetriesExhaustedError):
        await executor.execute(await built(executor))

    assert len(ledger.submitted) == 2


@pytest.mark.asyncio
async def test_same_request_twice_gives_two_transactions(executor, ledger):
    first = await executor.execute(await built(executor))
    second = await executor.execute(await built(executor))

    assert first.signature != second.signature
    assert len(ledger.submitted) == 2


@pytest.mark.asyncio
async def test_freshness_token_retried(builder):
    class FlakyTokens(FakeLedger):
        failures = 1

        async def freshness_token(self):
            if self.failures:
                self.failures -= 1
                raise NetworkError()
            return await super().freshness_token()

    executor = TransactionExecutor(FlakyTokens(), builder, fast_config())

    assert await executor.fetch_freshness_token() == "blockhash-1"


@pytest.mark.asyncio
async def test_status_requery(builder):
    ledger = FakeLedger(confirm_replies=[SignatureStatus(signature="sig-9", state=LedgerState.CONFIRMED, slot=7)])
    executor = TransactionExecutor(ledger, builder, fast_config())

    status = await executor.status("sig-9")

    assert status.state == LedgerState.CONFIRMED
    assert status.slot == 7


def test_lifecycle_transitions():
    lifecycle = TransactionLifecycle("tx_1")

    lifecycle.advance(ExecutionState.SUBMITTED)
    lifecycle.advance(ExecutionState.CONFIRMED)

    assert lifecycle.is_terminal
    assert [state for state, _ in lifecycle.history] == [
        ExecutionState.BUILT,
        ExecutionState.SUBMITTED,
        ExecutionState.CONFIRMED,
    ]


def test_lifecycle_rejects_skipping_submission():
    lifecycle = TransactionLifecycle("tx_1")

    with pytest.raises(InvalidTransitionError):
        lifecycle.advance(ExecutionState.CONFIRMED)


def test_lifecycle_terminal_states_are_final():
    lifecycle = TransactionLifecycle("tx_1")
    lifecycle.advance(ExecutionState.SUBMITTED)
    lifecycle.advance(ExecutionState.TIMED_OUT)

    with pytest.raises(InvalidTransitionError):
        lifecycle.advance(ExecutionState.SUBMITTED)


@pytest.mark.asyncio
@pytest.mark.parametrize("with_event", [False, True])
async def test_poll_interval_backs_off_to_ceiling(builder, with_event):
    delays = []

    async def record(delay):
        delays.append(delay)

    ledger = FakeLedger(confirm_replies=[LedgerState.PENDING] * 5 + [LedgerState.CONFIRMED])
    executor = TransactionExecutor(
        ledger,
        builder,
        fast_config(
            confirmation_timeout_seconds=5.0,
            poll_interval_seconds=0.01,
            poll_max_interval_seconds=0.03,
            poll_backoff_factor=1.5,
        ),
        sleep=record,
    )
    tx = await built(executor)

    result = await executor.execute(tx, cancel_event=asyncio.Event() if with_event else None)

    assert result.status == TransactionStatus.CONFIRMED
    assert delays == pytest.approx([0.01, 0.015, 0.0225, 0.03, 0.03])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply,error_type",
    [
        (RuntimeError("connection reset by peer"), RetriesExhaustedError),
        (ValueError("unexpected response shape"), LedgerRejectedError),
    ],
)
async def test_status_classifies_untyped_errors(builder, reply, error_type):
    ledger = FakeLedger(confirm_replies=[reply])
    executor = TransactionExecutor(ledger, builder, fast_config())

    with pytest.raises(error_type) as exc_info:
        await executor.status("sig-3")

    assert exc_info.value.signature == "sig-3"
    assert exc_info.value.stage == Stage.CONFIRM
    assert exc_info.value.__cause__ is reply
