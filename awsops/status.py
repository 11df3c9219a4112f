"""status.py - Final status resolution for a dispatched command."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .poller import SUCCESS_STATUS, InvocationRecord, list_invocation_records

logger = logging.getLogger(__name__)

__all__ = ["FinalStatus", "IN_PROGRESS_STATUS", "Resolution", "reduce_final_status", "resolve_final_status"]

# Written into state between dispatch and resolution.
IN_PROGRESS_STATUS = "InProgress"


class FinalStatus(str, enum.Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"
    CANCELLED = "Cancelled"
    UNKNOWN = "Unknown"


_COARSE_TO_FINAL = {
    "Success": FinalStatus.SUCCESS,
    "Failed": FinalStatus.FAILED,
    "TimedOut": FinalStatus.TIMED_OUT,
    "Cancelled": FinalStatus.CANCELLED,
}


@dataclass(frozen=True)
class Resolution:
    status: FinalStatus
    records: Tuple[InvocationRecord, ...] = ()
    error: Optional[Exception] = None


def reduce_final_status(records: Iterable[InvocationRecord]) -> FinalStatus:
    """Reduce to the status of the first record; per-target detail is not kept here.

    Any plugin not in Success (still running included) means Failed,
    otherwise the coarse status maps directly and anything unmapped
    (Pending, InProgress, ...) is Unknown. An empty record set is Unknown.
    """
    for record in records:
        if any(p.status != SUCCESS_STATUS for p in record.plugins):
            return FinalStatus.FAILED
        return _COARSE_TO_FINAL.get(record.status, FinalStatus.UNKNOWN)
    return FinalStatus.UNKNOWN


def resolve_final_status(ssm: Any, command_id: str) -> Resolution:
    """Fresh authoritative read of ``command_id``. Query errors yield Unknown."""
    try:
        records = list_invocation_records(ssm, command_id)
    except (BotoCoreError, ClientError) as exc:
        logger.warning("[WARNING] failed to resolve final status for command %s: %s", command_id, exc)
        return Resolution(status=FinalStatus.UNKNOWN, error=exc)
    status = reduce_final_status(records)
    logger.info("[INFO] command %s resolved to %s across %d invocation(s)", command_id, status.value, len(records))
    return Resolution(status=status, records=tuple(records))
