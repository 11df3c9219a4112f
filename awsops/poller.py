"""poller.py - Invocation poller for dispatched SSM commands.

One attempt is one full read of ``list_command_invocations(Details=True)``
(following ``NextToken``) reduced to a ``PollOutcome``:

    NO_RECORDS    invocation not materialised yet (read-after-write lag)
    IN_PROGRESS   at least one target still pending / running
    HAS_FAILURE   a target or plugin ended badly; wins over IN_PROGRESS
    SUCCEEDED     every target reported Success

``poll_until_terminal`` repeats attempts under a ``RetryBudget`` and returns
how the loop ended. It never decides the persisted status; that is the
status resolver's job.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .backoff import BackoffAction, OperationContext, RetryBudget
from .diagnostics import PollSignal
from .errors import RemoteFailure, TransientQueryError
from .serialization import _error_code

logger = logging.getLogger(__name__)

__all__ = [
    "FAILURE_STATUSES",
    "INTERMEDIATE_STATUSES",
    "PLUGIN_RUNNING_STATUSES",
    "SUCCESS_STATUS",
    "InvocationRecord",
    "PluginOutcome",
    "PollAttempt",
    "PollOutcome",
    "PollRun",
    "Termination",
    "classify_invocations",
    "list_invocation_records",
    "poll_command_invocation",
    "poll_until_terminal",
]

INTERMEDIATE_STATUSES = ("Pending", "InProgress", "Delayed", "Cancelling")
FAILURE_STATUSES = ("Failed", "TimedOut", "Cancelled")
SUCCESS_STATUS = "Success"
PLUGIN_RUNNING_STATUSES = ("Pending", "InProgress")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PluginOutcome:
    name: str
    status: str
    status_details: str = ""
    output: str = ""

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "PluginOutcome":
        return cls(
            name=str(raw.get("Name") or ""),
            status=str(raw.get("Status") or ""),
            status_details=str(raw.get("StatusDetails") or ""),
            output=str(raw.get("Output") or ""),
        )


@dataclass(frozen=True)
class InvocationRecord:
    instance_id: str
    status: str
    status_details: str = ""
    plugins: Tuple[PluginOutcome, ...] = ()

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "InvocationRecord":
        return cls(
            instance_id=str(raw.get("InstanceId") or ""),
            status=str(raw.get("Status") or ""),
            status_details=str(raw.get("StatusDetails") or ""),
            plugins=tuple(PluginOutcome.from_api(p) for p in raw.get("CommandPlugins") or []),
        )


class PollOutcome(enum.Enum):
    NO_RECORDS = "no_records"
    IN_PROGRESS = "in_progress"
    HAS_FAILURE = "has_failure"
    SUCCEEDED = "succeeded"

    @property
    def signal(self) -> PollSignal:
        if self in (PollOutcome.NO_RECORDS, PollOutcome.IN_PROGRESS):
            return PollSignal.RETRYABLE
        return PollSignal.DONE


@dataclass(frozen=True)
class PollAttempt:
    signal: PollSignal
    outcome: Optional[PollOutcome] = None
    records: Tuple[InvocationRecord, ...] = ()
    failures: Tuple[RemoteFailure, ...] = ()
    error: Optional[TransientQueryError] = None


class Termination(enum.Enum):
    SUCCEEDED = "succeeded"
    HAS_FAILURE = "has_failure"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    TIME_EXCEEDED = "time_exceeded"
    CANCELLED = "cancelled"
    QUERY_FAILED = "query_failed"


@dataclass
class PollRun:
    termination: Termination
    budget: RetryBudget
    delays: List[float] = field(default_factory=list)
    last_attempt: Optional[PollAttempt] = None

    @property
    def attempts(self) -> int:
        return self.budget.attempt

    @property
    def failures(self) -> Tuple[RemoteFailure, ...]:
        if self.last_attempt is None:
            return ()
        return self.last_attempt.failures


# ---------------------------------------------------------------------------
# Single attempt
# ---------------------------------------------------------------------------


def list_invocation_records(ssm: Any, command_id: str) -> List[InvocationRecord]:
    """Read every invocation of ``command_id`` with plugin detail.

    botocore errors propagate to the caller.
    """
    records: List[InvocationRecord] = []
    kwargs: Dict[str, Any] = {"CommandId": command_id, "Details": True}
    while True:
        resp = ssm.list_command_invocations(**kwargs)
        records.extend(InvocationRecord.from_api(inv) for inv in resp.get("CommandInvocations") or [])
        token = resp.get("NextToken")
        if not token:
            return records
        kwargs["NextToken"] = token


def classify_invocations(command_id: str, records: List[InvocationRecord]) -> PollAttempt:
    """Reduce one snapshot of invocation records to a ``PollAttempt``.

    Every record is scanned even after a failure is seen so that all failing
    targets and plugins are reported together.
    """
    if not records:
        return PollAttempt(signal=PollSignal.RETRYABLE, outcome=PollOutcome.NO_RECORDS)

    failures: List[RemoteFailure] = []
    all_success = True
    for record in records:
        if record.status != SUCCESS_STATUS:
            all_success = False
        if record.status in FAILURE_STATUSES:
            failures.append(
                RemoteFailure(
                    command_id=command_id,
                    instance_id=record.instance_id,
                    status=record.status,
                    status_details=record.status_details,
                )
            )
        for plugin in record.plugins:
            if plugin.status in PLUGIN_RUNNING_STATUSES or plugin.status == SUCCESS_STATUS:
                continue
            failures.append(
                RemoteFailure(
                    command_id=command_id,
                    instance_id=record.instance_id,
                    status=plugin.status,
                    status_details=plugin.status_details,
                    plugin_name=plugin.name,
                    output=plugin.output,
                )
            )

    if failures:
        outcome = PollOutcome.HAS_FAILURE
    elif all_success:
        outcome = PollOutcome.SUCCEEDED
    else:
        outcome = PollOutcome.IN_PROGRESS
    return PollAttempt(signal=outcome.signal, outcome=outcome, records=tuple(records), failures=tuple(failures))


def poll_command_invocation(ssm: Any, command_id: str) -> PollAttempt:
    try:
        records = list_invocation_records(ssm, command_id)
    except (BotoCoreError, ClientError) as exc:
        code = _error_code(exc, "BotoCoreError")
        logger.warning("[WARNING] list_command_invocations failed for %s: %s", command_id, exc)
        return PollAttempt(
            signal=PollSignal.FATAL,
            error=TransientQueryError(
                f"Error listing command invocations for command '{command_id}': {exc}",
                command_id=command_id,
                error_code=code,
            ),
        )
    return classify_invocations(command_id, records)


# ---------------------------------------------------------------------------
# Poll loop
# ---------------------------------------------------------------------------


def poll_until_terminal(
    ssm: Any,
    command_id: str,
    context: OperationContext,
    budget: RetryBudget,
) -> PollRun:
    """Poll until success, failure, query error or an exhausted budget."""
    clock = context.clock
    run = PollRun(termination=Termination.ATTEMPTS_EXHAUSTED, budget=budget)

    while True:
        blocked = run.budget.check_before_attempt(clock.monotonic(), context)
        if blocked is not None:
            run.termination = Termination(blocked.value)
            logger.warning(
                "[WARNING] command %s: stopping before attempt %d (%s)",
                command_id,
                run.budget.attempt + 1,
                blocked.value,
            )
            return run

        run.budget = run.budget.record_attempt()
        attempt = poll_command_invocation(ssm, command_id)
        run.last_attempt = attempt

        if attempt.signal is PollSignal.FATAL:
            run.termination = Termination.QUERY_FAILED
            return run
        if attempt.signal is PollSignal.DONE:
            run.termination = (
                Termination.SUCCEEDED if attempt.outcome is PollOutcome.SUCCEEDED else Termination.HAS_FAILURE
            )
            logger.info(
                "[INFO] command %s: %s after %d attempt(s)", command_id, attempt.outcome.value, run.budget.attempt
            )
            return run

        decision = run.budget.decide(clock.monotonic(), context)
        if decision.action is not BackoffAction.CONTINUE:
            run.termination = Termination(decision.action.value)
            logger.warning(
                "[WARNING] command %s: giving up after %d attempt(s) (%s)",
                command_id,
                run.budget.attempt,
                decision.action.value,
            )
            return run

        sleep_for = run.budget.sleep_seconds(clock.monotonic(), context)
        logger.info(
            "[INFO] command %s: %s on attempt %d, retrying in %.1fs",
            command_id,
            attempt.outcome.value,
            run.budget.attempt,
            sleep_for,
        )
        run.delays.append(sleep_for)
        clock.wait(context.event, sleep_for)
        run.budget = run.budget.next()
