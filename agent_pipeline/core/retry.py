"""Retrying call shared by the probe, negotiation and execution stages.

Every remote call goes through `call_with_retry`, which applies a per-attempt
deadline, retries `AgentCallError`s up to the attempt budget and sleeps a
randomized backoff between attempts.
"""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from .errors import AgentCallError, AgentTimeoutError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Attempt budget, per-attempt deadline and backoff window."""

    retry_attempts: int = Field(1, ge=0)
    timeout_seconds: float = Field(4.0, gt=0.0)
    backoff_min_seconds: float = Field(0.1, ge=0.0)
    backoff_max_seconds: float = Field(0.3, ge=0.0)

    @property
    def max_attempts(self) -> int:
        return self.retry_attempts + 1

    def backoff_delay(self) -> float:
        """Random delay to sleep before the next attempt."""
        upper = max(self.backoff_min_seconds, self.backoff_max_seconds)
        return random.uniform(self.backoff_min_seconds, upper)


class RetryOutcome(Generic[T]):
    """Result of a retried call: the value or the last error, plus timing."""

    def __init__(
        self,
        value: T | None,
        attempts: int,
        duration_ms: float,
        error: AgentCallError | None = None,
    ):
        self.value = value
        self.attempts = attempts
        self.duration_ms = duration_ms
        self.error = error

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None

    @property
    def last_status_code(self) -> int | None:
        return self.error.status_code if self.error is not None else None

    @property
    def last_response_body(self) -> Any:
        return self.error.response_body if self.error is not None else None

    def __repr__(self) -> str:
        return (
            f"RetryOutcome(succeeded={self.succeeded}, attempts={self.attempts}, "
            f"duration_ms={self.duration_ms:.1f})"
        )


async def call_with_retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    label: str = "agent call",
) -> RetryOutcome[T]:
    """Run `operation` until it succeeds or the attempt budget is spent.

    Args:
        operation: Coroutine factory receiving the 1-based attempt number
        policy: Attempt budget, deadline and backoff
        label: Short description used in log messages

    Returns:
        RetryOutcome holding the value of the first successful attempt, or
        the error of the last failed one

    """
    started = time.perf_counter()
    last_error: AgentCallError | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            value = await asyncio.wait_for(operation(attempt), policy.timeout_seconds)
            return RetryOutcome(
                value=value,
                attempts=attempt,
                duration_ms=(time.perf_counter() - started) * 1000,
            )
        except TimeoutError:
            last_error = AgentTimeoutError(
                f"{label} timed out after {policy.timeout_seconds}s"
            )
        except AgentCallError as e:
            last_error = e

        logger.debug(
            f"{label} failed on attempt {attempt}/{policy.max_attempts}: {last_error}"
        )
        if attempt < policy.max_attempts:
            await asyncio.sleep(policy.backoff_delay())

    return RetryOutcome(
        value=None,
        attempts=policy.max_attempts,
        duration_ms=(time.perf_counter() - started) * 1000,
        error=last_error,
    )
