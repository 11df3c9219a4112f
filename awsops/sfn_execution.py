"""sfn_execution.py - ``sfn_start_sync_execution`` resource.

Runs an Express state machine synchronously and records the outcome. The
call blocks until the execution ends, so there is no polling here.
"""
from __future__ import annotations

import time
from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError

from .config import logger
from .diagnostics import Diagnostics
from .errors import AwsOpsError, ValidationError
from .resource import Resource, State, carry_computed, triggers_changed
from .serialization import _emit_structured_observability, _error_code, _format_api_timestamp

__all__ = ["SfnStartSyncExecutionResource", "map_execution"]

COMPUTED_ATTRIBUTES = (
    "id",
    "execution_arn",
    "status",
    "output",
    "error",
    "cause",
    "billing_details",
    "start_date",
    "stop_date",
)


def map_execution(resp: Dict[str, Any]) -> Dict[str, Any]:
    """Map a ``StartSyncExecution`` response onto state attributes."""
    billing = resp.get("billingDetails") or {}
    return {
        "id": resp.get("executionArn") or "",
        "execution_arn": resp.get("executionArn") or "",
        "status": str(resp.get("status") or ""),
        "output": resp.get("output") or "",
        "error": resp.get("error"),
        "cause": resp.get("cause"),
        "billing_details": {
            "billed_duration_in_milliseconds": int(billing.get("billedDurationInMilliseconds") or 0),
            "billed_memory_used_in_mb": int(billing.get("billedMemoryUsedInMB") or 0),
        },
        "start_date": _format_api_timestamp(resp.get("startDate")),
        "stop_date": _format_api_timestamp(resp.get("stopDate")),
    }


class SfnStartSyncExecutionResource(Resource):
    type_name = "sfn_start_sync_execution"

    def _start(self, plan: State, diags: Diagnostics) -> State:
        state = dict(plan)
        arn = str(state.get("state_machine_arn") or "").strip()
        if not arn:
            raise ValidationError("state_machine_arn must not be empty")
        state["input"] = state.get("input") or "{}"

        kwargs: Dict[str, Any] = {"stateMachineArn": arn, "input": state["input"]}
        if state.get("name"):
            kwargs["name"] = state["name"]
        started = time.perf_counter()
        try:
            resp = self.clients.sfn.start_sync_execution(**kwargs)
        except (BotoCoreError, ClientError) as exc:
            _emit_structured_observability(
                component="sfn_execution",
                event="start_sync_execution",
                tool_name="stepfunctions.start_sync_execution",
                latency_ms=int((time.perf_counter() - started) * 1000),
                error_code=_error_code(exc, "sfn_start_sync_execution_failed"),
                extra={"state_machine_arn": arn},
            )
            raise AwsOpsError(
                f"Error calling AWS Step Functions StartSyncExecution API for state machine '{arn}': {exc}",
                summary="Unable to start SFN sync execution",
            ) from exc

        state.update(map_execution(resp))
        _emit_structured_observability(
            component="sfn_execution",
            event="start_sync_execution",
            tool_name="stepfunctions.start_sync_execution",
            latency_ms=int((time.perf_counter() - started) * 1000),
            extra={"state_machine_arn": arn, "execution_arn": state["execution_arn"], "status": state["status"]},
        )
        if state["status"] != "SUCCEEDED":
            logger.warning(
                "[WARNING] execution %s ended with %s: %s", state["execution_arn"], state["status"], state["error"]
            )
            diags.add_warning(
                f"Execution ended with status {state['status']}",
                f"Execution: {state['execution_arn']}, Error: {state['error'] or ''}, Cause: {state['cause'] or ''}",
            )
        return state

    def _create(self, plan: State, diags: Diagnostics) -> State:
        return self._start(plan, diags)

    def _update(self, plan: State, state: State, diags: Diagnostics) -> State:
        if triggers_changed(plan, state):
            return self._start(plan, diags)
        new_state = carry_computed(plan, state, COMPUTED_ATTRIBUTES)
        new_state["input"] = new_state.get("input") or "{}"
        return new_state
