from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

TM_FEATURES_FILE = "features_tm.json"
SP_FEATURES_FILE = "features_sp.json"


@dataclass
class FeatureCatalog:
    path: Path
    meta: Optional[Dict[str, Any]] = None
    features_by_id: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def behavior(self) -> Optional[str]:
        if not self.meta:
            return None
        value = self.meta.get("behavior")
        return str(value) if value else None

    def __len__(self) -> int:
        return len(self.features_by_id)


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        try:
            return json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in '{path.name}': {exc}") from exc


def load_graph(path: Path) -> Dict[str, List[Any]]:
    graph = _read_json(path)
    if not isinstance(graph, dict):
        raise ValueError(f"Graph file '{path.name}' must contain a JSON object")
    for key in ("nodes", "edges"):
        if not isinstance(graph.get(key), list):
            raise ValueError(f"Graph file '{path.name}' must contain a '{key}' list")
    return graph


def features_file_for_graph(graph_file_name: str) -> str:
    if "tm" in str(graph_file_name).lower():
        return TM_FEATURES_FILE
    return SP_FEATURES_FILE


def load_feature_catalog(path: Path) -> FeatureCatalog:
    payload = _read_json(path)
    if not isinstance(payload, dict):
        raise ValueError(f"Features file '{path.name}' must contain a JSON object")

    meta = payload.get("meta")
    features_by_id: Dict[str, Dict[str, Any]] = {}
    for feature in payload.get("features") or []:
        if not isinstance(feature, dict) or feature.get("id") is None:
            continue
        features_by_id[str(feature["id"])] = feature

    return FeatureCatalog(
        path=path,
        meta=meta if isinstance(meta, dict) else None,
        features_by_id=features_by_id,
    )
