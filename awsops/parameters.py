"""parameters.py - Flat configuration map to SSM multi-value parameters."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

__all__ = ["translate_parameters"]


def translate_parameters(raw: Optional[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """Wrap each value in a single-element list: ``{"k": "v"}`` -> ``{"k": ["v"]}``.

    Absent input yields ``{}``. ``None`` values are dropped and other scalars
    are coerced with ``str()``.
    """
    if not raw:
        return {}
    out: Dict[str, List[str]] = {}
    for key, value in raw.items():
        if value is None:
            continue
        out[str(key)] = [value if isinstance(value, str) else str(value)]
    return out
