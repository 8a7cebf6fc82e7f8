#!/usr/bin/env python3
"""Command line front end for the circuit viewer core.

``reduce`` prunes an attribution graph JSON file to a readable edge set.
``annotate`` builds the residue-level views for one feature's examples.
Both write JSON to the requested output path.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from circuitviz.inputs import load_feature_catalog
from circuitviz.params import (
    DEFAULT_LINE_LENGTH,
    DEFAULT_MAX_EDGES_PER_NODE,
    DEFAULT_MAX_EXAMPLES,
    DEFAULT_MIN_EDGE_WEIGHT,
    ViewParams,
)
from circuitviz.service import feature_examples, prepare_graph_view


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reduce attribution graphs and annotate feature example sequences."
    )
    parser.add_argument("--verbose", action="store_true", help="Log dropped edges and skipped examples")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reduce_parser = subparsers.add_parser("reduce", help="Prune a graph JSON file")
    reduce_parser.add_argument("graph", type=Path, help="Graph JSON file with 'nodes' and 'edges'")
    reduce_parser.add_argument("output", type=Path, help="Output JSON file")
    reduce_parser.add_argument(
        "--min-edge-weight",
        type=float,
        default=DEFAULT_MIN_EDGE_WEIGHT,
        help="Edges lighter than this are discarded before the per-node cap",
    )
    reduce_parser.add_argument(
        "--max-edges-per-node",
        type=int,
        default=DEFAULT_MAX_EDGES_PER_NODE,
        help="Maximum number of outgoing edges kept for each source node",
    )

    annotate_parser = subparsers.add_parser("annotate", help="Annotate a feature's example sequences")
    annotate_parser.add_argument("features", type=Path, help="features_*.json file")
    annotate_parser.add_argument("feature_id", help="Feature id, as used for graph nodes")
    annotate_parser.add_argument("output", type=Path, help="Output JSON file")
    annotate_parser.add_argument(
        "--line-length",
        type=int,
        default=DEFAULT_LINE_LENGTH,
        help="Residues per rendered line",
    )
    annotate_parser.add_argument(
        "--max-examples",
        type=int,
        default=DEFAULT_MAX_EXAMPLES,
        help="Maximum number of examples to annotate",
    )
    annotate_parser.add_argument(
        "--behavior",
        default=None,
        help="Behavior the features explain (tm or sp); defaults to the file's metadata",
    )
    return parser.parse_args(argv)


def _write_json(output: Path, payload: object) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)
        handle.write("\n")


def main(argv: Sequence[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.ERROR,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        params = ViewParams.from_cli_args(args)
    except ValueError as exc:
        print(f"Invalid parameters: {exc}", file=sys.stderr)
        return 1

    try:
        if args.command == "reduce":
            payload = prepare_graph_view(args.graph, params).to_payload()
        else:
            catalog = load_feature_catalog(args.features)
            payload = feature_examples(catalog, args.feature_id, params, behavior=args.behavior).to_payload()
    except (OSError, ValueError) as exc:
        print(f"Error while reading input: {exc}", file=sys.stderr)
        return 1

    _write_json(args.output, payload)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main(sys.argv[1:]))
