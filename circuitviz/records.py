from __future__ import annotations

import math
from typing import Any, Optional, Union

NodeId = Union[str, int]


class InvalidInputError(ValueError):
    """Raised when a root input cannot be interpreted at all."""


def finite_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def coerce_weight(value: Any) -> float:
    parsed = finite_number(value)
    return 0.0 if parsed is None else parsed


def coerce_id(value: Any) -> Optional[NodeId]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, int):
        return value
    return None


def require_list(value: Any, *, name: str) -> list:
    if not isinstance(value, (list, tuple)):
        raise InvalidInputError(f"{name} must be a list")
    return list(value)


def optional_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []
