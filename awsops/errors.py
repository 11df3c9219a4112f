"""errors.py - Error taxonomy for dispatch cycles and resources."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

__all__ = [
    "AwsOpsError",
    "CancelledError",
    "DispatchError",
    "RemoteFailure",
    "TimeoutExceeded",
    "TransientQueryError",
    "ValidationError",
]


class AwsOpsError(Exception):
    """Base class for errors raised by awsops.

    ``summary`` is the short headline shown to the user; ``str(exc)`` is the
    detailed message.
    """

    summary = "Operation failed"

    def __init__(self, message: str, *, summary: Optional[str] = None) -> None:
        super().__init__(message)
        if summary:
            self.summary = summary


class ValidationError(AwsOpsError):
    """Malformed or contradictory input; raised before any API call."""

    summary = "Validation Error"


class DispatchError(AwsOpsError):
    """The initial asynchronous submission failed; no operation exists."""

    summary = "Unable to send command"

    def __init__(self, message: str, *, error_code: str = "", summary: Optional[str] = None) -> None:
        super().__init__(message, summary=summary)
        self.error_code = error_code


class TransientQueryError(AwsOpsError):
    """A status query failed at the transport level while polling."""

    summary = "AWS Client Error"

    def __init__(self, message: str, *, command_id: str = "", error_code: str = "") -> None:
        super().__init__(message)
        self.command_id = command_id
        self.error_code = error_code


class TimeoutExceeded(AwsOpsError):
    """The retry budget ran out before the operation resolved."""

    summary = "Timeout while waiting for SSM command to complete"

    def __init__(self, message: str, *, command_id: str = "", attempts: int = 0, budget_seconds: float = 0.0) -> None:
        super().__init__(message)
        self.command_id = command_id
        self.attempts = attempts
        self.budget_seconds = budget_seconds


class CancelledError(AwsOpsError):
    """The ambient context ended for a reason other than its deadline."""

    summary = "Operation cancelled"

    def __init__(self, message: str, *, command_id: str = "", attempt: int = 0) -> None:
        super().__init__(message)
        self.command_id = command_id
        self.attempt = attempt


@dataclass(frozen=True)
class RemoteFailure:
    """A dispatched command that failed on a target. Recorded, never raised."""

    command_id: str
    instance_id: str
    status: str
    status_details: str = ""
    plugin_name: str = ""
    output: str = ""

    @property
    def summary(self) -> str:
        if self.plugin_name:
            return f"Plugin {self.plugin_name} failed: {self.status_details or self.status}"
        return f"Command invocation failed for instance {self.instance_id}: {self.status_details or self.status}"

    def describe(self) -> str:
        if self.plugin_name:
            return f"Command: {self.command_id}, Instance: {self.instance_id}, Output: {self.output}"
        return f"Command: {self.command_id}, Instance: {self.instance_id}, Status: {self.status}"
