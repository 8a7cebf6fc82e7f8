"""Shared core APIs for the circuit viewer."""

from .graph import ReducedGraph, reduce_graph, reduce_graph_payload
from .params import ViewParams
from .records import InvalidInputError
from .sequence import AnnotatedView, annotate, annotate_example
from .service import (
    FeatureExamples,
    GraphView,
    feature_examples,
    get_catalog,
    prepare_graph_view,
)

__all__ = [
    "ViewParams",
    "InvalidInputError",
    "ReducedGraph",
    "reduce_graph",
    "reduce_graph_payload",
    "AnnotatedView",
    "annotate",
    "annotate_example",
    "GraphView",
    "FeatureExamples",
    "prepare_graph_view",
    "feature_examples",
    "get_catalog",
]
