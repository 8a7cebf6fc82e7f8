"""Top-k pruning of attribution graphs so they stay readable when drawn.

Nodes always survive. Edges below the weight threshold are dropped, then
each source keeps only its heaviest outgoing edges.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .params import to_float, to_int
from .records import InvalidInputError, NodeId, coerce_id, coerce_weight, require_list

logger = logging.getLogger(__name__)

BEHAVIOR_KIND = "behavior"
FEATURE_KIND = "feature"

_EDGE_KEYS = {"src", "dst", "weight", "kind"}


@dataclass(frozen=True)
class Node:
    id: Optional[NodeId]
    kind: str = FEATURE_KIND
    attrs: Dict[str, Any] = field(default_factory=dict, hash=False)
    record: Any = field(default=None, hash=False)

    @property
    def is_behavior(self) -> bool:
        return self.kind == BEHAVIOR_KIND

    def to_payload(self) -> Any:
        """The caller's record, untouched."""
        if isinstance(self.record, Mapping):
            return dict(self.record)
        return self.record


@dataclass(frozen=True)
class Edge:
    source: NodeId
    target: NodeId
    weight: float = 0.0
    kind: Optional[str] = None
    attrs: Dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class ReducedEdge:
    id: str
    edge: Edge

    def to_payload(self) -> Dict[str, Any]:
        payload = dict(self.edge.attrs)
        payload.update(
            {
                "id": self.id,
                "source": self.edge.source,
                "target": self.edge.target,
                "weight": self.edge.weight,
                "kind": self.edge.kind,
            }
        )
        return payload


@dataclass
class ReducedGraph:
    nodes: Tuple[Node, ...]
    edges: Tuple[ReducedEdge, ...]
    diagnostics: List[str] = field(default_factory=list)

    def edges_from(self, source: NodeId) -> List[ReducedEdge]:
        return [item for item in self.edges if item.edge.source == source]

    def to_payload(self) -> Dict[str, object]:
        return {
            "nodes": [node.to_payload() for node in self.nodes],
            "edges": [item.to_payload() for item in self.edges],
            "diagnostics": list(self.diagnostics),
        }


def parse_node(record: Any) -> Node:
    if not isinstance(record, Mapping):
        return Node(id=None, record=record)
    attrs = {key: value for key, value in record.items() if key not in {"id", "kind"}}
    kind = record.get("kind")
    return Node(
        id=coerce_id(record.get("id")),
        kind=str(kind) if kind is not None else FEATURE_KIND,
        attrs=attrs,
        record=record,
    )


def parse_edge(record: Any) -> Tuple[Optional[Edge], Optional[str]]:
    """Sanitize one edge record.

    Returns ``(edge, None)`` on success and ``(None, reason)`` when the record
    cannot name both endpoints. A bad weight never rejects the edge; it
    becomes 0.0 and is filtered like any other weight.
    """
    if not isinstance(record, Mapping):
        return None, "edge record is not an object"
    source = coerce_id(record.get("src"))
    target = coerce_id(record.get("dst"))
    if source is None or target is None:
        missing = "src" if source is None else "dst"
        return None, f"edge is missing '{missing}'"
    kind = record.get("kind")
    return (
        Edge(
            source=source,
            target=target,
            weight=coerce_weight(record.get("weight")),
            kind=str(kind) if kind is not None else None,
            attrs={key: value for key, value in record.items() if key not in _EDGE_KEYS},
        ),
        None,
    )


def reduce_graph(
    nodes: Sequence[Any],
    edges: Sequence[Any],
    min_weight: float,
    max_out_degree: int,
) -> ReducedGraph:
    node_records = require_list(nodes, name="nodes")
    edge_records = require_list(edges, name="edges")
    min_weight = to_float(min_weight, min_value=0.0, name="min_weight")
    max_out_degree = to_int(max_out_degree, positive=True, name="max_out_degree")

    diagnostics: List[str] = []
    parsed_nodes = tuple(parse_node(record) for record in node_records)
    for position, node in enumerate(parsed_nodes):
        if node.id is None:
            message = f"node #{position} has no id; kept as an isolated node"
            diagnostics.append(message)
            logger.warning(message)

    kept: List[ReducedEdge] = []
    for position, record in enumerate(edge_records):
        edge, reason = parse_edge(record)
        if edge is None:
            message = f"dropped edge #{position}: {reason}"
            diagnostics.append(message)
            logger.warning(message)
            continue
        if edge.weight < min_weight:
            continue
        kept.append(ReducedEdge(id=f"e{len(kept)}", edge=edge))

    # dict preserves first-seen order of sources
    by_source: Dict[NodeId, List[ReducedEdge]] = {}
    for item in kept:
        by_source.setdefault(item.edge.source, []).append(item)

    pruned: List[ReducedEdge] = []
    for group in by_source.values():
        group.sort(key=lambda item: item.edge.weight, reverse=True)
        pruned.extend(group[:max_out_degree])

    return ReducedGraph(nodes=parsed_nodes, edges=tuple(pruned), diagnostics=diagnostics)


def reduce_graph_payload(
    graph: Any,
    min_weight: float,
    max_out_degree: int,
) -> ReducedGraph:
    if not isinstance(graph, Mapping):
        raise InvalidInputError("graph must be an object with 'nodes' and 'edges'")
    return reduce_graph(
        graph.get("nodes", []),
        graph.get("edges", []),
        min_weight,
        max_out_degree,
    )
