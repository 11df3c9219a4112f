"""targets.py - Addressing of remote execution targets.

A dispatch addresses either an explicit list of managed-instance ids or a
list of ``key``/``values`` selectors (tag filters, resource groups). The two
forms are mutually exclusive; ``resolve_targets`` turns raw configuration into
exactly one of the two variants or raises ``ValidationError``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import ValidationError

__all__ = [
    "InstanceIdTargets",
    "Selector",
    "SelectorTargets",
    "TargetSet",
    "resolve_targets",
]

MISSING_TARGETS_MESSAGE = "Either instance_ids or targets must be specified"
CONFLICTING_TARGETS_MESSAGE = (
    "Cannot specify both instance_ids and targets. Use either instance_ids or targets, not both"
)


@dataclass(frozen=True)
class Selector:
    key: str
    values: Tuple[str, ...]

    def to_api(self) -> Dict[str, Any]:
        return {"Key": self.key, "Values": list(self.values)}

    def to_state(self) -> Dict[str, Any]:
        return {"key": self.key, "values": list(self.values)}


@dataclass(frozen=True)
class InstanceIdTargets:
    instance_ids: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.instance_ids:
            raise ValidationError(MISSING_TARGETS_MESSAGE)

    def to_api(self) -> List[Dict[str, Any]]:
        return [{"Key": "InstanceIds", "Values": list(self.instance_ids)}]

    def describe(self) -> str:
        return ",".join(self.instance_ids)


@dataclass(frozen=True)
class SelectorTargets:
    selectors: Tuple[Selector, ...]

    def __post_init__(self) -> None:
        if not self.selectors:
            raise ValidationError(MISSING_TARGETS_MESSAGE)

    def to_api(self) -> List[Dict[str, Any]]:
        return [s.to_api() for s in self.selectors]

    def describe(self) -> str:
        return ";".join(f"{s.key}={','.join(s.values)}" for s in self.selectors)


TargetSet = Union[InstanceIdTargets, SelectorTargets]


def _unique_ids(raw: Iterable[Any]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for item in raw:
        value = str(item or "").strip()
        if value:
            seen.setdefault(value, None)
    return tuple(seen)


def _parse_selector(raw: Any, index: int) -> Selector:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"targets[{index}] must be an object with 'key' and 'values'")
    key = str(raw.get("key") or raw.get("Key") or "").strip()
    values = raw.get("values", raw.get("Values")) or []
    if isinstance(values, str):
        values = [values]
    cleaned = tuple(str(v).strip() for v in values if str(v or "").strip())
    if not key:
        raise ValidationError(f"targets[{index}].key must not be empty")
    if not cleaned:
        raise ValidationError(f"targets[{index}] ({key}) must list at least one value")
    return Selector(key=key, values=cleaned)


def resolve_targets(
    instance_ids: Optional[Sequence[Any]] = None,
    targets: Optional[Sequence[Any]] = None,
) -> TargetSet:
    """Validate the two target forms and return exactly one ``TargetSet`` variant.

    An absent or empty list counts as not supplied. Supplying both or neither
    raises ``ValidationError``; nothing here touches the network.
    """
    ids = _unique_ids(instance_ids or [])
    raw_selectors = list(targets or [])

    if ids and raw_selectors:
        raise ValidationError(CONFLICTING_TARGETS_MESSAGE)
    if ids:
        return InstanceIdTargets(instance_ids=ids)
    if raw_selectors:
        return SelectorTargets(selectors=tuple(_parse_selector(s, i) for i, s in enumerate(raw_selectors)))
    raise ValidationError(MISSING_TARGETS_MESSAGE)
