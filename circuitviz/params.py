from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_MIN_EDGE_WEIGHT = 0.0
DEFAULT_MAX_EDGES_PER_NODE = 10
DEFAULT_LINE_LENGTH = 60
DEFAULT_MAX_EXAMPLES = 8


@dataclass(frozen=True)
class ViewParams:
    min_edge_weight: float = DEFAULT_MIN_EDGE_WEIGHT
    max_edges_per_node: int = DEFAULT_MAX_EDGES_PER_NODE
    line_length: int = DEFAULT_LINE_LENGTH
    max_examples: int = DEFAULT_MAX_EXAMPLES

    @classmethod
    def from_cli_args(cls, args: Any) -> "ViewParams":
        return cls(
            min_edge_weight=to_float(
                getattr(args, "min_edge_weight", DEFAULT_MIN_EDGE_WEIGHT),
                min_value=0.0,
                name="min_edge_weight",
            ),
            max_edges_per_node=to_int(
                getattr(args, "max_edges_per_node", DEFAULT_MAX_EDGES_PER_NODE),
                positive=True,
                name="max_edges_per_node",
            ),
            line_length=to_int(getattr(args, "line_length", DEFAULT_LINE_LENGTH), positive=True, name="line_length"),
            max_examples=to_int(getattr(args, "max_examples", DEFAULT_MAX_EXAMPLES), positive=True, name="max_examples"),
        )

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "ViewParams":
        if payload is None:
            payload = {}
        if not hasattr(payload, "get"):
            raise ValueError("params must be an object")

        def require(name: str, default: Any) -> Any:
            value = payload.get(name, default)
            return default if value is None else value

        return cls(
            min_edge_weight=to_float(require("min_edge_weight", DEFAULT_MIN_EDGE_WEIGHT), min_value=0.0, name="min_edge_weight"),
            max_edges_per_node=to_int(require("max_edges_per_node", DEFAULT_MAX_EDGES_PER_NODE), positive=True, name="max_edges_per_node"),
            line_length=to_int(require("line_length", DEFAULT_LINE_LENGTH), positive=True, name="line_length"),
            max_examples=to_int(require("max_examples", DEFAULT_MAX_EXAMPLES), positive=True, name="max_examples"),
        )


def to_float(
    value: Any,
    *,
    name: str,
    positive: bool = False,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a floating-point number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a floating-point number") from exc
    if not math.isfinite(parsed):
        raise ValueError(f"{name} must be finite")
    if positive and parsed <= 0:
        raise ValueError(f"{name} must be positive")
    if min_value is not None and parsed < min_value:
        raise ValueError(f"{name} must be >= {min_value}")
    if max_value is not None and parsed > max_value:
        raise ValueError(f"{name} must be <= {max_value}")
    return parsed


def to_int(
    value: Any,
    *,
    name: str,
    positive: bool = False,
    min_value: Optional[int] = None,
) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{name} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if positive and parsed <= 0:
        raise ValueError(f"{name} must be positive")
    if min_value is not None and parsed < min_value:
        raise ValueError(f"{name} must be >= {min_value}")
    return parsed
