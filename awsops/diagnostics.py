"""diagnostics.py - Diagnostic sink and the poll continuation signal.

Two separate vocabularies live here:

``Diagnostics``
    The three-level sink (error / warning / info) handed back to the host
    framework. Errors fail the resource operation; warnings and info are
    shown to the user but do not.

``PollSignal``
    What a single poll attempt tells the retry loop. ``RETRYABLE`` means the
    status API answered but the work is incomplete, ``FATAL`` means the status
    API itself could not be called, and ``DONE`` means the invocation reached
    a terminal outcome (success or remote failure).
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Iterator, List

__all__ = ["Diagnostic", "Diagnostics", "PollSignal", "Severity"]


class Severity(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class PollSignal(enum.Enum):
    FATAL = "fatal"
    RETRYABLE = "retryable"
    DONE = "done"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    summary: str
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"{self.summary}: {self.detail}"
        return self.summary


class Diagnostics:
    def __init__(self, entries: Iterable[Diagnostic] = ()) -> None:
        self._entries: List[Diagnostic] = list(entries)

    def add_error(self, summary: str, detail: str = "") -> None:
        self._entries.append(Diagnostic(Severity.ERROR, summary, detail))

    def add_warning(self, summary: str, detail: str = "") -> None:
        self._entries.append(Diagnostic(Severity.WARNING, summary, detail))

    def add_info(self, summary: str, detail: str = "") -> None:
        self._entries.append(Diagnostic(Severity.INFO, summary, detail))

    def extend(self, other: Iterable[Diagnostic]) -> None:
        self._entries.extend(other)

    def has_error(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self._entries)

    def errors(self) -> List[Diagnostic]:
        return [d for d in self._entries if d.severity is Severity.ERROR]

    def warnings(self) -> List[Diagnostic]:
        return [d for d in self._entries if d.severity is Severity.WARNING]

    def warnings_count(self) -> int:
        return len(self.warnings())

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __repr__(self) -> str:
        return f"Diagnostics({self._entries!r})"
