"""serialization.py - Timestamps and structured observability."""
from __future__ import annotations

import datetime as dt
import json
import time
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import _get_logs
from .config import OBSERVABILITY_LOG_GROUP, logger

__all__ = [
    "_emit_cloudwatch_json",
    "_emit_structured_observability",
    "_error_code",
    "_format_api_timestamp",
    "_now_z",
]


def _now_z() -> str:
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _format_api_timestamp(value: Any) -> str:
    """Render an API datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (empty when absent)."""
    if not isinstance(value, dt.datetime):
        return ""
    if value.tzinfo is not None:
        value = value.astimezone(dt.timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _error_code(exc: Exception, default: str = "") -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code") or default)
    return default


# ---------------------------------------------------------------------------
# Observability
# ---------------------------------------------------------------------------

_cloudwatch_streams_ready: set = set()


def _emit_cloudwatch_json(log_group: str, payload: Dict[str, Any], stream_name: str = "structured-observability") -> None:
    """Mirror one payload to CloudWatch Logs; failures only log locally."""
    if not log_group:
        return
    logs = _get_logs()
    key = (log_group, stream_name)

    if key not in _cloudwatch_streams_ready:
        for call, kwargs in (
            (logs.create_log_group, {"logGroupName": log_group}),
            (logs.create_log_stream, {"logGroupName": log_group, "logStreamName": stream_name}),
        ):
            try:
                call(**kwargs)
            except ClientError as exc:
                if _error_code(exc) != "ResourceAlreadyExistsException":
                    logger.warning("[WARNING] observability mirror disabled for %s: %s", log_group, exc)
                    return
            except BotoCoreError as exc:
                logger.warning("[WARNING] observability mirror disabled for %s: %s", log_group, exc)
                return
        _cloudwatch_streams_ready.add(key)

    try:
        logs.put_log_events(
            logGroupName=log_group,
            logStreamName=stream_name,
            logEvents=[
                {
                    "timestamp": int(time.time() * 1000),
                    "message": json.dumps(payload, sort_keys=True, default=str),
                }
            ],
        )
    except (BotoCoreError, ClientError) as exc:
        logger.warning("[WARNING] failed mirroring observability event to %s: %s", log_group, exc)


def _emit_structured_observability(
    *,
    component: str,
    event: str,
    command_id: Optional[str] = None,
    tool_name: Optional[str] = None,
    latency_ms: Optional[int] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
    mirror_log_group: Optional[str] = None,
) -> None:
    payload: Dict[str, Any] = {
        "timestamp": _now_z(),
        "component": component,
        "event": event,
        "command_id": str(command_id or ""),
        "tool_name": str(tool_name or ""),
        "latency_ms": int(max(0, latency_ms or 0)),
        "error_code": str(error_code or ""),
    }
    if extra:
        payload.update(extra)
    logger.info("[OBSERVABILITY] %s", json.dumps(payload, sort_keys=True, default=str))
    log_group = OBSERVABILITY_LOG_GROUP if mirror_log_group is None else mirror_log_group
    if log_group:
        _emit_cloudwatch_json(log_group, payload)
