"""
Recovery Strategies

Explicit retry loop with exponential backoff. The loop never raises for
ledger failures; it reports a tagged RetryOutcome instead.
"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from .errors import ErrorContext, RecoverableError, UnrecoverableError, to_ledger_error

T = TypeVar("T")

logger = structlog.stdlib.get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounds for retrying transient failures."""

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must not be negative")

    def get_delay(self, attempt: int) -> float:
        """Delay before the retry that follows the given zero-based attempt."""
        delay = min(
            self.base_delay_seconds * (self.exponential_base ** attempt),
            self.max_delay_seconds,
        )
        if self.jitter and delay > 0:
            jitter_range = delay * self.jitter_factor
            delay += random.uniform(-jitter_range, jitter_range)
        return max(delay, 0.0)


class RetryOutcomeKind(str, Enum):
    SUCCESS = "success"
    RETRIES_EXHAUSTED = "retries_exhausted"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass
class RetryOutcome(Generic[T]):
    """Tagged result of a retried operation."""

    kind: RetryOutcomeKind
    attempts: int
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.kind == RetryOutcomeKind.SUCCESS

    @property
    def error_context(self) -> Optional[ErrorContext]:
        if isinstance(self.error, (RecoverableError, UnrecoverableError)):
            return self.error.context
        return None


Sleeper = Callable[[float], Awaitable[Any]]


class RetryStrategy:
    """
    Retries an async operation on recoverable errors.

    The operation receives the 1-based attempt number so callers can
    refresh per-attempt state (e.g. a new freshness token). Untyped
    exceptions are classified with ``classify_error``.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        operation: Callable[[int], Awaitable[T]],
        operation_name: str = "operation",
    ) -> RetryOutcome[T]:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                value = await operation(attempt)
            except (RecoverableError, UnrecoverableError) as e:
                error: Exception = e
            except Exception as e:
                error = to_ledger_error(e)
                error.__cause__ = e
            else:
                if attempt > 1:
                    logger.info("retry_recovered", operation=operation_name, attempts=attempt)
                return RetryOutcome(kind=RetryOutcomeKind.SUCCESS, attempts=attempt, value=value)

            last_error = error

            if isinstance(error, UnrecoverableError):
                logger.error(
                    "retry_permanent_failure",
                    operation=operation_name,
                    attempt=attempt,
                    category=error.category.value,
                    error=str(error),
                )
                return RetryOutcome(
                    kind=RetryOutcomeKind.PERMANENT_FAILURE,
                    attempts=attempt,
                    error=error,
                )

            if attempt < self.policy.max_attempts:
                delay = self._get_delay(error, attempt - 1)
                logger.warning(
                    "retry_scheduled",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=self.policy.max_attempts,
                    delay_s=round(delay, 3),
                    error=str(error),
                )
                await self._sleep(delay)

        logger.error(
            "retry_exhausted",
            operation=operation_name,
            attempts=self.policy.max_attempts,
            error=str(last_error),
        )
        return RetryOutcome(
            kind=RetryOutcomeKind.RETRIES_EXHAUSTED,
            attempts=self.policy.max_attempts,
            error=last_error,
        )

    def _get_delay(self, error: Exception, attempt: int) -> float:
        # Honour a server-provided Retry-After, capped by the policy ceiling
        if isinstance(error, RecoverableError) and error.retry_after:
            return min(error.retry_after, self.policy.max_delay_seconds)
        return self.policy.get_delay(attempt)
