"""test_fakes.py - Deterministic fakes shared by the test modules.

``FakeClock`` advances time only when the poll loop sleeps.
``ScriptedSsm`` answers ``list_command_invocations`` from a script and
records every call.
"""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import ClientError

from .backoff import Clock

__all__ = ["FakeClock", "ScriptedSsm", "client_error", "invocation", "plugin"]


def client_error(code: str, operation: str, message: str = "boom") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def plugin(name: str = "aws:runShellScript", status: str = "Success", details: str = "", output: str = "") -> Dict[str, Any]:
    return {"Name": name, "Status": status, "StatusDetails": details or status, "Output": output}


def invocation(instance_id: str, status: str, plugins: Optional[List[Dict[str, Any]]] = None, details: str = "") -> Dict[str, Any]:
    return {
        "InstanceId": instance_id,
        "Status": status,
        "StatusDetails": details or status,
        "CommandPlugins": plugins or [],
    }


class FakeClock(Clock):
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.waits: List[float] = []
        self.on_wait: Optional[Callable[[float], None]] = None

    def monotonic(self) -> float:
        return self.now

    def wait(self, event: threading.Event, seconds: float) -> bool:
        self.waits.append(seconds)
        if self.on_wait is not None:
            self.on_wait(seconds)
        if event.is_set():
            return True
        self.now += seconds
        return False


class ScriptedSsm:
    """Fake SSM client.

    ``pages`` is a list of responses (or exceptions to raise) for
    successive ``list_command_invocations`` calls; once exhausted the last
    entry repeats.
    """

    def __init__(self, pages: Optional[List[Any]] = None, command_id: str = "cmd-123") -> None:
        self.pages = list(pages or [])
        self.command_id = command_id
        self.send_calls: List[Dict[str, Any]] = []
        self.list_calls: List[Dict[str, Any]] = []
        self.send_error: Optional[Exception] = None

    def send_command(self, **kwargs: Any) -> Dict[str, Any]:
        self.send_calls.append(kwargs)
        if self.send_error is not None:
            raise self.send_error
        return {"Command": {"CommandId": self.command_id}}

    def list_command_invocations(self, **kwargs: Any) -> Dict[str, Any]:
        self.list_calls.append(kwargs)
        index = min(len(self.list_calls) - 1, len(self.pages) - 1)
        page = self.pages[index] if self.pages else {"CommandInvocations": []}
        if isinstance(page, Exception):
            raise page
        if isinstance(page, list):
            return {"CommandInvocations": page}
        return page
