"""send_command.py - ``ssm_send_command`` resource.

Runs an SSM document against instance ids or target selectors and records
the command id and final status. ``read`` and ``delete`` never touch AWS: a
sent command cannot be refreshed into something else or taken back. A new
command is only sent on create or when ``triggers`` change.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .diagnostics import Diagnostics
from .dispatch import run_command_cycle
from .errors import ValidationError
from .resource import Resource, State, carry_computed, triggers_changed

__all__ = ["SendCommandResource", "run_dispatch_into_state"]

COMPUTED_ATTRIBUTES = ("id", "command_id", "status")


def run_dispatch_into_state(
    resource: Resource,
    state: State,
    *,
    document_name: str,
    parameters: Optional[Mapping[str, Any]],
    comment: Optional[str],
    diags: Diagnostics,
    raw_parameters: Optional[Mapping[str, List[str]]] = None,
) -> State:
    """Run one dispatch cycle and write ``id``/``command_id``/``status`` into ``state``."""
    result = run_command_cycle(
        document_name=document_name,
        instance_ids=state.get("instance_ids"),
        targets=state.get("targets"),
        parameters=parameters,
        raw_parameters=raw_parameters,
        comment=comment,
        ssm=resource.clients.ssm,
        context=resource.new_context(),
    )
    state["id"] = result.command_id
    state["command_id"] = result.command_id
    state["status"] = result.status
    diags.extend(result.diagnostics)
    return state


def _normalise_targets(raw: Any) -> List[Dict[str, Any]]:
    out = []
    for item in raw or []:
        item = dict(item or {})
        values = item.get("values") or []
        out.append({"key": item.get("key") or "", "values": [values] if isinstance(values, str) else list(values)})
    return out


def _normalise(plan: State) -> State:
    state = dict(plan)
    document_name = str(state.get("document_name") or "").strip()
    if not document_name:
        raise ValidationError("document_name must not be empty")
    state["document_name"] = document_name
    state["instance_ids"] = list(state.get("instance_ids") or []) or None
    state["targets"] = _normalise_targets(state.get("targets")) or None
    state["parameters"] = dict(state.get("parameters") or {}) or None
    state["comment"] = str(state.get("comment") or "")
    state["triggers"] = dict(state.get("triggers") or {}) or None
    return state


class SendCommandResource(Resource):
    type_name = "ssm_send_command"

    def _send(self, state: State, diags: Diagnostics) -> State:
        return run_dispatch_into_state(
            self,
            state,
            document_name=state["document_name"],
            parameters=state.get("parameters"),
            comment=state.get("comment") or None,
            diags=diags,
        )

    def _create(self, plan: State, diags: Diagnostics) -> State:
        return self._send(_normalise(plan), diags)

    def _update(self, plan: State, state: State, diags: Diagnostics) -> State:
        new_state = _normalise(plan)
        if triggers_changed(new_state, state):
            return self._send(new_state, diags)
        new_state = carry_computed(new_state, state, COMPUTED_ATTRIBUTES)
        for name in COMPUTED_ATTRIBUTES:
            if new_state.get(name) is None:
                new_state[name] = ""
        return new_state
