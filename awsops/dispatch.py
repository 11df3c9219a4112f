"""dispatch.py - SSM command dispatch and the dispatch-and-poll cycle.

``run_command_cycle`` is the single entry point used by every
command-dispatching resource:

1. resolve targets (``ValidationError``, no network call)
2. translate parameters
3. ``ssm.send_command`` (``DispatchError``, nothing persisted)
4. poll invocations under the retry budget
5. resolve the final status with one fresh read
6. return the handle, status and diagnostics

Remote command failures are data: they land in ``status`` and as warning
diagnostics. Timeouts, cancellation and status-query failures surface as
error diagnostics while the remote command keeps running unobserved.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import _get_ssm
from .backoff import OperationContext, RetryBudget
from .config import (
    COMMAND_INITIAL_BACKOFF_SECONDS,
    COMMAND_MAX_ATTEMPTS,
    COMMAND_MAX_BACKOFF_SECONDS,
    COMMAND_TIMEOUT_SECONDS,
    logger,
)
from .diagnostics import Diagnostics
from .errors import AwsOpsError, CancelledError, DispatchError, RemoteFailure, TimeoutExceeded
from .parameters import translate_parameters
from .poller import PollOutcome, PollRun, Termination, classify_invocations, poll_until_terminal
from .serialization import _emit_structured_observability, _error_code
from .status import IN_PROGRESS_STATUS, FinalStatus, Resolution, resolve_final_status
from .targets import TargetSet, resolve_targets

__all__ = ["DispatchResult", "dispatch_command", "run_command_cycle"]

_FAILURE_FINALS = (FinalStatus.FAILED, FinalStatus.TIMED_OUT, FinalStatus.CANCELLED)


@dataclass
class DispatchResult:
    command_id: str
    status: str = IN_PROGRESS_STATUS
    attempts: int = 0
    delays: List[float] = field(default_factory=list)
    failures: Tuple[RemoteFailure, ...] = ()
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    error: Optional[AwsOpsError] = None


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def dispatch_command(
    ssm: Any,
    *,
    document_name: str,
    targets: TargetSet,
    parameters: Dict[str, List[str]],
    comment: Optional[str] = None,
) -> str:
    """Send the command and return its ``CommandId``; raise ``DispatchError`` otherwise."""
    kwargs: Dict[str, Any] = {
        "DocumentName": document_name,
        "Targets": targets.to_api(),
        "Parameters": parameters,
    }
    if comment:
        kwargs["Comment"] = comment
    started = time.perf_counter()

    try:
        resp = ssm.send_command(**kwargs)
    except (BotoCoreError, ClientError) as exc:
        error_code = _error_code(exc, "ssm_send_command_failed")
        _emit_structured_observability(
            component="dispatch",
            event="dispatch_send_command",
            tool_name="ssm.send_command",
            latency_ms=int((time.perf_counter() - started) * 1000),
            error_code=error_code,
            extra={"document_name": document_name, "targets": targets.describe()},
        )
        raise DispatchError(
            f"Error sending SSM command with document '{document_name}' to {targets.describe()}: {exc}",
            error_code=error_code,
        ) from exc

    command_id = str((resp.get("Command") or {}).get("CommandId") or "")
    _emit_structured_observability(
        component="dispatch",
        event="dispatch_send_command",
        command_id=command_id,
        tool_name="ssm.send_command",
        latency_ms=int((time.perf_counter() - started) * 1000),
        error_code="" if command_id else "missing_command_id",
        extra={"document_name": document_name, "targets": targets.describe()},
    )
    if not command_id:
        raise DispatchError(
            f"SSM send_command for document '{document_name}' returned no command id",
            error_code="missing_command_id",
        )
    logger.info("[INFO] dispatched command %s (document=%s)", command_id, document_name)
    return command_id


# ---------------------------------------------------------------------------
# Cycle
# ---------------------------------------------------------------------------


def _timeout_error(command_id: str, run: PollRun, now: float) -> TimeoutExceeded:
    elapsed = run.budget.elapsed(now)
    return TimeoutExceeded(
        f"Timeout occurred while waiting on command '{command_id}' (polled {run.attempts} times over "
        f"{elapsed:.0f}s, budget {run.budget.timeout_seconds:.0f}s). "
        "The command may still be running on the target instances.",
        command_id=command_id,
        attempts=run.attempts,
        budget_seconds=run.budget.timeout_seconds,
    )


def _finish(
    command_id: str,
    run: PollRun,
    resolution: Resolution,
    context: OperationContext,
) -> Tuple[FinalStatus, Tuple[RemoteFailure, ...], Optional[AwsOpsError]]:
    """Combine how polling ended with the resolver's fresh read."""
    status = resolution.status
    failures = run.failures
    error: Optional[AwsOpsError] = None

    if run.termination is Termination.HAS_FAILURE:
        if status not in _FAILURE_FINALS:
            status = FinalStatus.FAILED
    elif run.termination is Termination.ATTEMPTS_EXHAUSTED:
        final_read = classify_invocations(command_id, list(resolution.records))
        if final_read.outcome is PollOutcome.HAS_FAILURE:
            failures = final_read.failures
        elif resolution.error is not None or final_read.outcome in (PollOutcome.NO_RECORDS, PollOutcome.IN_PROGRESS):
            error = _timeout_error(command_id, run, context.clock.monotonic())
    elif run.termination is Termination.TIME_EXCEEDED:
        error = _timeout_error(command_id, run, context.clock.monotonic())
    elif run.termination is Termination.CANCELLED:
        error = CancelledError(
            f"Context cancelled before attempt {run.attempts + 1}: {context.reason} (command '{command_id}')",
            command_id=command_id,
            attempt=run.attempts + 1,
        )
    elif run.termination is Termination.QUERY_FAILED and run.last_attempt is not None:
        error = run.last_attempt.error
    return status, failures, error


def run_command_cycle(
    *,
    document_name: str,
    instance_ids: Optional[Sequence[Any]] = None,
    targets: Optional[Sequence[Any]] = None,
    parameters: Optional[Mapping[str, Any]] = None,
    raw_parameters: Optional[Mapping[str, List[str]]] = None,
    comment: Optional[str] = None,
    ssm: Any = None,
    context: Optional[OperationContext] = None,
    max_attempts: int = COMMAND_MAX_ATTEMPTS,
    timeout_seconds: float = COMMAND_TIMEOUT_SECONDS,
    initial_delay: float = COMMAND_INITIAL_BACKOFF_SECONDS,
    max_delay: float = COMMAND_MAX_BACKOFF_SECONDS,
) -> DispatchResult:
    """Dispatch one command and follow it to a final status.

    ``raw_parameters`` are already in the multi-value API shape and are
    merged over the translated ``parameters``.

    Raises ``ValidationError`` and ``DispatchError``; everything after a
    successful dispatch is reported through the returned result.
    """
    target_set = resolve_targets(instance_ids, targets)
    translated = translate_parameters(parameters)
    for key, values in (raw_parameters or {}).items():
        translated[key] = list(values)
    ssm = ssm if ssm is not None else _get_ssm()
    context = context or OperationContext()

    command_id = dispatch_command(
        ssm,
        document_name=document_name,
        targets=target_set,
        parameters=translated,
        comment=comment,
    )
    result = DispatchResult(command_id=command_id)
    started = time.perf_counter()

    budget = RetryBudget.start(
        context.clock.monotonic(),
        max_attempts=max_attempts,
        timeout_seconds=timeout_seconds,
        initial_delay=initial_delay,
        max_delay=max_delay,
    )
    run = poll_until_terminal(ssm, command_id, context, budget)
    resolution = resolve_final_status(ssm, command_id)
    status, failures, error = _finish(command_id, run, resolution, context)

    result.status = status.value
    result.attempts = run.attempts
    result.delays = list(run.delays)
    result.failures = failures
    result.error = error
    for failure in failures:
        result.diagnostics.add_warning(failure.summary, failure.describe())
    if error is not None:
        result.diagnostics.add_error(error.summary, str(error))

    _emit_structured_observability(
        component="dispatch",
        event="command_cycle_complete",
        command_id=command_id,
        tool_name="ssm.list_command_invocations",
        latency_ms=int((time.perf_counter() - started) * 1000),
        error_code=type(error).__name__ if error is not None else "",
        extra={
            "document_name": document_name,
            "status": result.status,
            "termination": run.termination.value,
            "attempts": run.attempts,
            "failures": len(failures),
        },
    )
    return result
