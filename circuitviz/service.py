from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .graph import ReducedGraph, reduce_graph
from .inputs import FeatureCatalog, features_file_for_graph, load_feature_catalog, load_graph
from .params import ViewParams
from .sequence import AnnotatedView, annotate_example

logger = logging.getLogger(__name__)

DEFAULT_BEHAVIOR = "tm"
BEHAVIOR_LABELS = {"tm": "TM", "sp": "SP"}
GENERIC_BEHAVIOR_LABEL = "Behavior"


@dataclass
class GraphView:
    graph_file: str
    params: ViewParams
    reduced: ReducedGraph
    input_node_count: int
    input_edge_count: int

    def to_payload(self) -> Dict[str, object]:
        payload = self.reduced.to_payload()
        payload.update(
            {
                "graph_file": self.graph_file,
                "min_edge_weight": self.params.min_edge_weight,
                "max_edges_per_node": self.params.max_edges_per_node,
                "input_node_count": self.input_node_count,
                "input_edge_count": self.input_edge_count,
                "kept_edge_count": len(self.reduced.edges),
            }
        )
        return payload


@dataclass
class FeatureExamples:
    feature_id: str
    behavior: str
    behavior_label: str
    total_examples: int
    examples: List[AnnotatedView] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, object]:
        return {
            "feature_id": self.feature_id,
            "behavior": self.behavior,
            "behavior_label": self.behavior_label,
            "total_examples": self.total_examples,
            "examples": [example.to_payload() for example in self.examples],
            "diagnostics": list(self.diagnostics),
        }


CATALOG_CACHE: Dict[Path, FeatureCatalog] = {}
MAX_CATALOGS = 4
_LOCK = threading.RLock()


def _trim_cache() -> None:
    while len(CATALOG_CACHE) > MAX_CATALOGS:
        first_key = next(iter(CATALOG_CACHE))
        del CATALOG_CACHE[first_key]


def behavior_label(behavior: Optional[str]) -> str:
    key = str(behavior or "").strip().lower()
    return BEHAVIOR_LABELS.get(key, GENERIC_BEHAVIOR_LABEL)


def prepare_graph_view(graph_path: Path, params: ViewParams) -> GraphView:
    graph = load_graph(graph_path)
    reduced = reduce_graph(
        graph["nodes"],
        graph["edges"],
        params.min_edge_weight,
        params.max_edges_per_node,
    )
    return GraphView(
        graph_file=graph_path.name,
        params=params,
        reduced=reduced,
        input_node_count=len(graph["nodes"]),
        input_edge_count=len(graph["edges"]),
    )


def get_catalog(data_dir: Path, graph_file_name: str) -> FeatureCatalog:
    path = (data_dir / features_file_for_graph(graph_file_name)).resolve()
    with _LOCK:
        catalog = CATALOG_CACHE.get(path)
        if catalog is not None:
            return catalog
    if not path.is_file():
        raise ValueError(f"Features file '{path.name}' not found")

    catalog = load_feature_catalog(path)
    logger.info("Loaded %d features from %s", len(catalog), path.name)
    with _LOCK:
        CATALOG_CACHE[path] = catalog
        _trim_cache()
    return catalog


def clear_catalog_cache() -> None:
    with _LOCK:
        CATALOG_CACHE.clear()


def _resolve_behavior(catalog: FeatureCatalog, examples: list, behavior: Optional[str]) -> str:
    if behavior:
        return str(behavior).lower()
    if catalog.behavior:
        return catalog.behavior.lower()
    if examples and isinstance(examples[0], dict) and examples[0].get("behavior"):
        return str(examples[0]["behavior"]).lower()
    return DEFAULT_BEHAVIOR


def feature_examples(
    catalog: FeatureCatalog,
    feature_id: str,
    params: ViewParams,
    behavior: Optional[str] = None,
) -> FeatureExamples:
    try:
        feature = catalog.features_by_id[str(feature_id)]
    except KeyError as exc:
        raise ValueError(f"Feature '{feature_id}' is not present in {catalog.path.name}") from exc

    examples = feature.get("examples")
    if not isinstance(examples, list):
        examples = []
    resolved = _resolve_behavior(catalog, examples, behavior)

    result = FeatureExamples(
        feature_id=str(feature_id),
        behavior=resolved,
        behavior_label=behavior_label(resolved),
        total_examples=len(examples),
    )
    for index, example in enumerate(examples[: params.max_examples]):
        try:
            result.examples.append(annotate_example(example, line_length=params.line_length))
        except ValueError as exc:
            message = f"skipped example #{index + 1}: {exc}"
            result.diagnostics.append(message)
            logger.warning("%s (feature %s)", message, feature_id)
    return result
