"""backoff.py - Retry budget, clock abstraction and operation context.

The poll loop never closes over mutable counters. It carries a frozen
``RetryBudget`` and replaces it with ``budget.next()`` after every
in-progress attempt. Wall-clock reads and sleeps go through a ``Clock`` so
tests can drive the schedule without real time passing.
"""
from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, replace
from typing import Optional

from .config import (
    COMMAND_INITIAL_BACKOFF_SECONDS,
    COMMAND_MAX_ATTEMPTS,
    COMMAND_MAX_BACKOFF_SECONDS,
    COMMAND_TIMEOUT_SECONDS,
)

__all__ = [
    "BackoffAction",
    "BackoffDecision",
    "Clock",
    "OperationContext",
    "RetryBudget",
    "SystemClock",
]


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class Clock:
    """Time source used by the poll loop."""

    def monotonic(self) -> float:
        raise NotImplementedError

    def wait(self, event: threading.Event, seconds: float) -> bool:
        """Block up to ``seconds``; return True when ``event`` fired first."""
        raise NotImplementedError


class SystemClock(Clock):
    def monotonic(self) -> float:
        return time.monotonic()

    def wait(self, event: threading.Event, seconds: float) -> bool:
        if seconds <= 0:
            return event.is_set()
        return event.wait(seconds)


# ---------------------------------------------------------------------------
# Operation context
# ---------------------------------------------------------------------------


class OperationContext:
    """Ambient deadline and cancellation for one resource operation.

    ``cancel()`` may be called from another thread (process shutdown); it
    wakes any backoff sleep immediately. Deadline expiry is reported
    separately so callers can tell a timeout from a cancellation.
    """

    def __init__(
        self,
        *,
        clock: Optional[Clock] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self._event = threading.Event()
        self._reason = ""
        self.deadline: Optional[float] = None
        if timeout_seconds is not None:
            self.deadline = self.clock.monotonic() + max(0.0, float(timeout_seconds))

    @property
    def event(self) -> threading.Event:
        return self._event

    @property
    def reason(self) -> str:
        return self._reason or "context cancelled"

    def cancel(self, reason: str = "") -> None:
        self._reason = reason
        self._event.set()

    def cancelled(self) -> bool:
        return self._event.is_set()

    def expired(self) -> bool:
        return self.deadline is not None and self.clock.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self.clock.monotonic())


# ---------------------------------------------------------------------------
# Retry budget
# ---------------------------------------------------------------------------


class BackoffAction(enum.Enum):
    CONTINUE = "continue"
    TIME_EXCEEDED = "time_exceeded"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BackoffDecision:
    action: BackoffAction
    delay: float = 0.0


@dataclass(frozen=True)
class RetryBudget:
    """Attempt counter, cycle start and current delay for one poll cycle.

    ``attempt`` counts attempts already made. ``delay`` is the sleep before
    the next attempt: 1, 2, 4, 8, 16, 30, 30, ... seconds.
    """

    attempt: int
    started_at: float
    delay: float
    max_attempts: int = COMMAND_MAX_ATTEMPTS
    timeout_seconds: float = COMMAND_TIMEOUT_SECONDS
    max_delay: float = COMMAND_MAX_BACKOFF_SECONDS

    @classmethod
    def start(
        cls,
        started_at: float,
        *,
        max_attempts: int = COMMAND_MAX_ATTEMPTS,
        timeout_seconds: float = COMMAND_TIMEOUT_SECONDS,
        initial_delay: float = COMMAND_INITIAL_BACKOFF_SECONDS,
        max_delay: float = COMMAND_MAX_BACKOFF_SECONDS,
    ) -> "RetryBudget":
        return cls(
            attempt=0,
            started_at=started_at,
            delay=min(initial_delay, max_delay),
            max_attempts=max(1, int(max_attempts)),
            timeout_seconds=float(timeout_seconds),
            max_delay=float(max_delay),
        )

    @property
    def deadline(self) -> float:
        return self.started_at + self.timeout_seconds

    def elapsed(self, now: float) -> float:
        return max(0.0, now - self.started_at)

    def record_attempt(self) -> "RetryBudget":
        return replace(self, attempt=self.attempt + 1)

    def next(self) -> "RetryBudget":
        """Budget for the attempt after a sleep of ``self.delay``."""
        return replace(self, delay=min(self.delay * 2, self.max_delay))

    def check_before_attempt(self, now: float, context: OperationContext) -> Optional[BackoffAction]:
        """Deadline first, then cancellation. ``None`` means go ahead."""
        if now >= self.deadline or context.expired():
            return BackoffAction.TIME_EXCEEDED
        if context.cancelled():
            return BackoffAction.CANCELLED
        return None

    def decide(self, now: float, context: OperationContext) -> BackoffDecision:
        """What to do after an attempt that left the command unresolved."""
        if self.attempt >= self.max_attempts:
            return BackoffDecision(BackoffAction.ATTEMPTS_EXHAUSTED)
        blocked = self.check_before_attempt(now, context)
        if blocked is not None:
            return BackoffDecision(blocked)
        return BackoffDecision(BackoffAction.CONTINUE, delay=self.delay)

    def sleep_seconds(self, now: float, context: OperationContext) -> float:
        """Delay clipped to whichever deadline comes first."""
        remaining = self.deadline - now
        ctx_remaining = context.remaining()
        if ctx_remaining is not None:
            remaining = min(remaining, ctx_remaining)
        return max(0.0, min(self.delay, remaining))
