from __future__ import annotations

import logging
import os
from pathlib import Path

from flask import Flask, jsonify, request

from circuitviz.graph import reduce_graph_payload
from circuitviz.params import ViewParams
from circuitviz.sequence import annotate_example
from circuitviz.service import feature_examples, get_catalog, prepare_graph_view

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = Path(os.environ.get("CIRCUITVIZ_DATA_DIR", str(BASE_DIR / "data")))

app = Flask(__name__)
app.config["DATA_DIR"] = DATA_DIR


def _data_dir() -> Path:
    return Path(app.config["DATA_DIR"])


def _data_file(file_name: str) -> Path:
    name = str(file_name).strip()
    if not name or name.startswith(".") or "/" in name or "\\" in name:
        raise ValueError("Invalid data file name")
    if not name.lower().endswith(".json"):
        raise ValueError("Data files must be .json")
    return _data_dir() / name


@app.post("/api/graph/reduce")
def api_graph_reduce():
    payload = request.get_json(silent=True) or {}
    if "graph" not in payload:
        return jsonify({"error": "graph is required"}), 400

    try:
        params = ViewParams.from_payload(payload.get("params", {}))
        reduced = reduce_graph_payload(
            payload["graph"],
            params.min_edge_weight,
            params.max_edges_per_node,
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    return jsonify(reduced.to_payload())


@app.post("/api/sequence/annotate")
def api_sequence_annotate():
    payload = request.get_json(silent=True) or {}
    if "example" not in payload:
        return jsonify({"error": "example is required"}), 400

    try:
        params = ViewParams.from_payload(payload.get("params", {}))
        view = annotate_example(payload["example"], line_length=params.line_length)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    return jsonify(view.to_payload())


@app.get("/api/graphs/<graph_file>")
def api_graph(graph_file: str):
    try:
        params = ViewParams.from_payload(request.args.to_dict())
        graph_view = prepare_graph_view(_data_file(graph_file), params)
    except (OSError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400

    return jsonify(graph_view.to_payload())


@app.get("/api/features/<graph_file>/<path:feature_id>")
def api_feature_examples(graph_file: str, feature_id: str):
    args = request.args.to_dict()
    behavior = args.pop("behavior", None)
    try:
        params = ViewParams.from_payload(args)
        _data_file(graph_file)
        catalog = get_catalog(_data_dir(), graph_file)
        result = feature_examples(catalog, feature_id, params, behavior=behavior)
    except (OSError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400

    return jsonify(result.to_payload())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="127.0.0.1", port=5000, debug=True, threaded=False)
