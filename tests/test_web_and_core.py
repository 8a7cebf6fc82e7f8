from __future__ import annotations

import argparse
import io
import json
import tempfile
import unittest
from contextlib import redirect_stderr
from pathlib import Path

import circuit_viz
from circuitviz import service
from circuitviz.inputs import (
    SP_FEATURES_FILE,
    TM_FEATURES_FILE,
    features_file_for_graph,
    load_feature_catalog,
    load_graph,
)
from circuitviz.params import ViewParams
from circuitviz.service import behavior_label, feature_examples, get_catalog, prepare_graph_view
from webapp.app import app


GRAPH = {
    "nodes": [
        {"id": "L2/F7", "kind": "feature", "layer": 2, "feature": 7, "importance": 0.012},
        {"id": "L4/F3", "kind": "feature", "layer": 4, "feature": 3, "importance": 0.004},
        {"id": "L5/F9", "kind": "feature", "layer": 5, "feature": 9, "importance": 0.001},
        {"id": "TM", "kind": "behavior"},
    ],
    "edges": [
        {"src": "L2/F7", "dst": "L4/F3", "weight": 0.42, "kind": "feature_feature"},
        {"src": "L2/F7", "dst": "L5/F9", "weight": 0.08, "kind": "feature_feature"},
        {"src": "L2/F7", "dst": "TM", "weight": 0.61, "kind": "feature_behavior"},
        {"src": "L4/F3", "dst": "TM", "weight": 0.02, "kind": "feature_behavior"},
        {"src": "L5/F9", "weight": 0.9},
    ],
}

EXAMPLE = {
    "accession": "Q9XYZ1",
    "sequence": "MLLAVLFAVLLALSAQASRPGT",
    "behavior": "sp",
    "behavior_segments": [[0, 16]],
    "feature_segments": [[10, 20]],
    "top_positions": [{"pos": 14, "act": 3.1}],
    "max_act": 3.1,
    "threshold": 0.5,
    "overlap_frac_feature_in_behavior": 0.63,
}

FEATURES = {
    "meta": {"behavior": "tm"},
    "features": [
        {"id": "L2/F7", "examples": [EXAMPLE, {"accession": "broken"}, dict(EXAMPLE, accession="Q9XYZ2")]},
        {"id": "L4/F3", "examples": []},
        {"examples": [EXAMPLE]},
    ],
}


class _DataDirTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)
        self.data_dir = Path(self.tempdir.name)
        self._write("graph_tm.json", GRAPH)
        self._write(TM_FEATURES_FILE, FEATURES)
        (self.data_dir / "broken.json").write_text("{not json", encoding="utf-8")

        service.clear_catalog_cache()
        self.addCleanup(service.clear_catalog_cache)

    def _write(self, name: str, payload: object) -> Path:
        path = self.data_dir / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path


class CoreTests(_DataDirTestCase):
    def test_params_payload_parsing(self):
        params = ViewParams.from_payload(
            {"min_edge_weight": "0.05", "max_edges_per_node": "3", "line_length": 50, "max_examples": None}
        )
        self.assertEqual(params.min_edge_weight, 0.05)
        self.assertEqual(params.max_edges_per_node, 3)
        self.assertEqual(params.line_length, 50)
        self.assertEqual(params.max_examples, 8)
        self.assertEqual(ViewParams.from_payload(None), ViewParams())

    def test_params_payload_rejects_bad_values(self):
        for payload, message in [
            ({"min_edge_weight": -1}, "min_edge_weight must be >="),
            ({"min_edge_weight": "inf"}, "min_edge_weight must be finite"),
            ({"max_edges_per_node": 0}, "max_edges_per_node must be positive"),
            ({"max_edges_per_node": 2.5}, "max_edges_per_node must be an integer"),
            ({"line_length": "wide"}, "line_length must be an integer"),
            ({"max_examples": True}, "max_examples must be an integer"),
        ]:
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError) as ctx:
                    ViewParams.from_payload(payload)
                self.assertIn(message, str(ctx.exception))
        with self.assertRaises(ValueError):
            ViewParams.from_payload(["not", "an", "object"])

    def test_params_from_cli_args(self):
        args = argparse.Namespace(min_edge_weight=0.1, max_edges_per_node=4)
        params = ViewParams.from_cli_args(args)
        self.assertEqual(params, ViewParams(min_edge_weight=0.1, max_edges_per_node=4))

    def test_features_file_for_graph(self):
        self.assertEqual(features_file_for_graph("graph_TM_layer4.json"), TM_FEATURES_FILE)
        self.assertEqual(features_file_for_graph("graph_sp.json"), SP_FEATURES_FILE)

    def test_load_graph_validates_shape(self):
        graph = load_graph(self.data_dir / "graph_tm.json")
        self.assertEqual(len(graph["nodes"]), 4)
        self._write("no_edges.json", {"nodes": []})
        with self.assertRaises(ValueError) as ctx:
            load_graph(self.data_dir / "no_edges.json")
        self.assertIn("'edges' list", str(ctx.exception))
        with self.assertRaises(ValueError) as ctx:
            load_graph(self.data_dir / "broken.json")
        self.assertIn("Invalid JSON", str(ctx.exception))
        with self.assertRaises(OSError):
            load_graph(self.data_dir / "missing.json")

    def test_load_feature_catalog_indexes_by_id(self):
        catalog = load_feature_catalog(self.data_dir / TM_FEATURES_FILE)
        self.assertEqual(sorted(catalog.features_by_id), ["L2/F7", "L4/F3"])
        self.assertEqual(catalog.behavior, "tm")
        self.assertEqual(len(catalog), 2)

    def test_prepare_graph_view_reduces_loaded_graph(self):
        view = prepare_graph_view(self.data_dir / "graph_tm.json", ViewParams(min_edge_weight=0.05, max_edges_per_node=1))
        payload = view.to_payload()
        self.assertEqual(payload["graph_file"], "graph_tm.json")
        self.assertEqual(payload["input_edge_count"], 5)
        self.assertEqual(payload["kept_edge_count"], 1)
        self.assertEqual(payload["edges"][0]["target"], "TM")
        self.assertEqual(payload["nodes"], GRAPH["nodes"])
        self.assertEqual(len(payload["diagnostics"]), 1)

    def test_behavior_label(self):
        self.assertEqual(behavior_label("tm"), "TM")
        self.assertEqual(behavior_label("SP"), "SP")
        self.assertEqual(behavior_label("other"), "Behavior")
        self.assertEqual(behavior_label(None), "Behavior")

    def test_feature_examples_skip_broken_and_cap(self):
        catalog = get_catalog(self.data_dir, "graph_tm.json")
        result = feature_examples(catalog, "L2/F7", ViewParams(line_length=10))
        self.assertEqual(result.behavior, "tm")
        self.assertEqual(result.behavior_label, "TM")
        self.assertEqual(result.total_examples, 3)
        self.assertEqual([view.accession for view in result.examples], ["Q9XYZ1", "Q9XYZ2"])
        self.assertEqual(len(result.diagnostics), 1)
        self.assertIn("#2", result.diagnostics[0])

        capped = feature_examples(catalog, "L2/F7", ViewParams(max_examples=1), behavior="SP")
        self.assertEqual(len(capped.examples), 1)
        self.assertEqual(capped.behavior_label, "SP")

    def test_feature_examples_behavior_falls_back_to_first_example(self):
        self._write(SP_FEATURES_FILE, {"features": [{"id": "F", "examples": [EXAMPLE]}]})
        catalog = get_catalog(self.data_dir, "graph_sp.json")
        self.assertEqual(feature_examples(catalog, "F", ViewParams()).behavior, "sp")

    def test_feature_examples_unknown_feature(self):
        catalog = get_catalog(self.data_dir, "graph_tm.json")
        with self.assertRaises(ValueError) as ctx:
            feature_examples(catalog, "L9/F99", ViewParams())
        self.assertIn("L9/F99", str(ctx.exception))
        self.assertEqual(feature_examples(catalog, "L4/F3", ViewParams()).examples, [])

    def test_catalog_cache_reuses_and_trims(self):
        first = get_catalog(self.data_dir, "graph_tm.json")
        self.assertIs(get_catalog(self.data_dir, "graph_tm_other.json"), first)

        old_max = service.MAX_CATALOGS
        service.MAX_CATALOGS = 1
        self.addCleanup(setattr, service, "MAX_CATALOGS", old_max)
        self._write(SP_FEATURES_FILE, {"features": []})
        get_catalog(self.data_dir, "graph_sp.json")
        self.assertEqual(len(service.CATALOG_CACHE), 1)
        self.assertIsNot(get_catalog(self.data_dir, "graph_tm.json"), first)

    def test_missing_catalog_is_value_error(self):
        with self.assertRaises(ValueError) as ctx:
            get_catalog(self.data_dir, "graph_sp.json")
        self.assertIn("not found", str(ctx.exception))


class ApiTests(_DataDirTestCase):
    def setUp(self):
        super().setUp()
        self._old_data_dir = app.config["DATA_DIR"]
        app.config["DATA_DIR"] = self.data_dir
        self.addCleanup(app.config.__setitem__, "DATA_DIR", self._old_data_dir)
        self.client = app.test_client()

    def test_reduce_graph(self):
        resp = self.client.post(
            "/api/graph/reduce",
            json={"graph": GRAPH, "params": {"min_edge_weight": 0.05, "max_edges_per_node": 2}},
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual([edge["target"] for edge in body["edges"]], ["TM", "L4/F3"])
        self.assertEqual([edge["id"] for edge in body["edges"]], ["e2", "e0"])
        self.assertEqual(body["nodes"], GRAPH["nodes"])
        self.assertEqual(len(body["diagnostics"]), 1)

    def test_reduce_graph_validation_errors(self):
        resp = self.client.post("/api/graph/reduce", json={})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("graph is required", resp.get_json()["error"])

        resp = self.client.post("/api/graph/reduce", json={"graph": [1, 2]})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("graph must be an object", resp.get_json()["error"])

        resp = self.client.post("/api/graph/reduce", json={"graph": GRAPH, "params": {"max_edges_per_node": 0}})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("max_edges_per_node must be positive", resp.get_json()["error"])

    def test_annotate_sequence(self):
        resp = self.client.post("/api/sequence/annotate", json={"example": EXAMPLE, "params": {"line_length": 10}})
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body["length"], 22)
        self.assertEqual([(line["start"], line["end"]) for line in body["lines"]], [(1, 10), (11, 20), (21, 22)])
        residue = body["lines"][1]["residues"][4]
        self.assertEqual(residue["position"], 15)
        self.assertEqual(residue["category"], "both")
        self.assertTrue(residue["scored"])
        self.assertEqual(body["metrics"]["max_act"], 3.1)
        self.assertEqual(body["primary_segments_text"], "1-17")

    def test_annotate_sequence_with_interval_keys(self):
        example = {
            "sequence": "ACDEFGHIKL",
            "primary_segments": [[0, 4]],
            "secondary_segments": [[3, 6]],
            "position_scores": [{"pos": 3, "act": 1.0}],
            "overlap": 0.5,
        }
        resp = self.client.post("/api/sequence/annotate", json={"example": example})
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        residue = body["lines"][0]["residues"][3]
        self.assertEqual(residue["category"], "both")
        self.assertTrue(residue["scored"])
        self.assertEqual(body["primary_segments_text"], "1-5")
        self.assertEqual(body["secondary_segments_text"], "4-7")
        self.assertEqual(body["metrics"]["overlap"], 0.5)
        self.assertIsNone(body["metrics"]["max_act"])

    def test_annotate_empty_sequence(self):
        resp = self.client.post("/api/sequence/annotate", json={"example": {"sequence": ""}})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["lines"], [])

    def test_annotate_invalid_root(self):
        resp = self.client.post("/api/sequence/annotate", json={"example": {"sequence": None}})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("sequence", resp.get_json()["error"])

        resp = self.client.post("/api/sequence/annotate", json={})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("example is required", resp.get_json()["error"])

    def test_graph_from_data_dir(self):
        resp = self.client.get("/api/graphs/graph_tm.json?min_edge_weight=0.5&max_edges_per_node=3")
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body["kept_edge_count"], 1)
        self.assertEqual(body["min_edge_weight"], 0.5)

    def test_graph_from_data_dir_errors(self):
        resp = self.client.get("/api/graphs/missing.json")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("No such file", resp.get_json()["error"])

        resp = self.client.get("/api/graphs/graph_tm.txt")
        self.assertEqual(resp.status_code, 400)
        self.assertIn(".json", resp.get_json()["error"])

        resp = self.client.get("/api/graphs/.hidden.json")
        self.assertEqual(resp.status_code, 400)

    def test_feature_examples_endpoint(self):
        resp = self.client.get("/api/features/graph_tm.json/L2/F7?line_length=60&max_examples=2")
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body["feature_id"], "L2/F7")
        self.assertEqual(body["behavior_label"], "TM")
        self.assertEqual(len(body["examples"]), 1)
        self.assertEqual(len(body["diagnostics"]), 1)

    def test_feature_examples_endpoint_unknown_feature(self):
        resp = self.client.get("/api/features/graph_tm.json/nope")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("not present", resp.get_json()["error"])


class CliTests(_DataDirTestCase):
    def test_reduce_writes_json(self):
        output = self.data_dir / "out" / "reduced.json"
        code = circuit_viz.main(
            ["reduce", str(self.data_dir / "graph_tm.json"), str(output), "--min-edge-weight", "0.05", "--max-edges-per-node", "1"]
        )
        self.assertEqual(code, 0)
        payload = json.loads(output.read_text(encoding="utf-8"))
        self.assertEqual(payload["kept_edge_count"], 1)

    def test_annotate_writes_json(self):
        output = self.data_dir / "examples.json"
        code = circuit_viz.main(
            ["annotate", str(self.data_dir / TM_FEATURES_FILE), "L2/F7", str(output), "--line-length", "20"]
        )
        self.assertEqual(code, 0)
        payload = json.loads(output.read_text(encoding="utf-8"))
        self.assertEqual(len(payload["examples"]), 2)
        self.assertEqual(len(payload["examples"][0]["lines"]), 2)

    def test_errors_return_nonzero(self):
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = circuit_viz.main(["reduce", str(self.data_dir / "broken.json"), str(self.data_dir / "x.json")])
        self.assertEqual(code, 1)
        self.assertIn("Invalid JSON", stderr.getvalue())

        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = circuit_viz.main(
                ["reduce", str(self.data_dir / "graph_tm.json"), str(self.data_dir / "x.json"), "--max-edges-per-node", "0"]
            )
        self.assertEqual(code, 1)
        self.assertIn("max_edges_per_node must be positive", stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
