"""resource.py - Shared plumbing for declarative resources.

A resource receives plain dicts from the host framework (``plan`` for the
desired configuration, ``state`` for the last persisted record) and returns
a ``ResourceResponse``. ``state=None`` tells the host to drop the resource.
Errors raised by the operation are folded into error diagnostics here so
they never escape to the host.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from .aws_clients import ProviderClients
from .backoff import OperationContext
from .config import logger
from .diagnostics import Diagnostics
from .errors import AwsOpsError

__all__ = ["Resource", "ResourceResponse", "carry_computed", "normalise_triggers", "triggers_changed"]

State = Dict[str, Any]


@dataclass
class ResourceResponse:
    state: Optional[State]
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def ok(self) -> bool:
        return not self.diagnostics.has_error()


def normalise_triggers(value: Any) -> Dict[str, str]:
    if not value:
        return {}
    return {str(k): "" if v is None else str(v) for k, v in dict(value).items()}


def triggers_changed(plan: Mapping[str, Any], state: Mapping[str, Any]) -> bool:
    return normalise_triggers(plan.get("triggers")) != normalise_triggers(state.get("triggers"))


def carry_computed(plan: Mapping[str, Any], state: Mapping[str, Any], names: Iterable[str]) -> State:
    """Copy ``plan`` and fill computed attributes the plan left unset from ``state``."""
    merged = dict(plan)
    for name in names:
        if merged.get(name) is None:
            merged[name] = state.get(name)
    return merged


class Resource:
    """Base class: subclasses implement ``_create``/``_read``/``_update``/``_delete``.

    Each hook receives a ``Diagnostics`` sink and returns the new state.
    """

    type_name = ""

    def __init__(
        self,
        clients: Optional[ProviderClients] = None,
        *,
        context_factory: Optional[Callable[[], OperationContext]] = None,
    ) -> None:
        self.clients = clients or ProviderClients()
        self._context_factory = context_factory or OperationContext

    def new_context(self) -> OperationContext:
        return self._context_factory()

    # -- public surface --------------------------------------------------

    def create(self, plan: Mapping[str, Any]) -> ResourceResponse:
        return self._guard("create", self._create, None, dict(plan))

    def read(self, state: Mapping[str, Any]) -> ResourceResponse:
        return self._guard("read", self._read, dict(state), dict(state))

    def update(self, plan: Mapping[str, Any], state: Mapping[str, Any]) -> ResourceResponse:
        return self._guard("update", self._update, dict(state), dict(plan), dict(state))

    def delete(self, state: Mapping[str, Any]) -> ResourceResponse:
        return self._guard("delete", self._delete, dict(state), dict(state))

    # -- hooks -----------------------------------------------------------

    def _create(self, plan: State, diags: Diagnostics) -> Optional[State]:
        raise NotImplementedError

    def _read(self, state: State, diags: Diagnostics) -> Optional[State]:
        return state

    def _update(self, plan: State, state: State, diags: Diagnostics) -> Optional[State]:
        raise NotImplementedError

    def _delete(self, state: State, diags: Diagnostics) -> Optional[State]:
        return None

    # -- internals -------------------------------------------------------

    def _guard(self, op: str, fn: Callable[..., Optional[State]], fallback: Optional[State], *args: Any) -> ResourceResponse:
        diags = Diagnostics()
        try:
            state = fn(*args, diags)
        except AwsOpsError as exc:
            logger.warning("[WARNING] %s %s failed: %s", self.type_name, op, exc)
            diags.add_error(exc.summary, str(exc))
            return ResourceResponse(state=fallback, diagnostics=diags)
        return ResourceResponse(state=state, diagnostics=diags)
