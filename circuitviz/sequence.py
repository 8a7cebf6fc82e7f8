"""Residue-level annotation of protein sequences.

Two interval categories are fused with a sparse score table into one
classification per residue:

* ``primary``   the behavior segments (e.g. transmembrane or signal peptide)
* ``secondary`` the feature's activating mask
* ``both``      covered by both categories
* ``plain``     covered by neither

A residue present in the score table additionally carries ``scored``.

Intervals arrive 0-indexed and inclusive. Every position handed back to
callers (interval summaries, line bounds, residue records) is 1-indexed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .params import DEFAULT_LINE_LENGTH, to_int
from .records import InvalidInputError, finite_number, optional_list

PLAIN = "plain"
PRIMARY = "primary"
SECONDARY = "secondary"
BOTH = "both"
CATEGORIES = (PLAIN, PRIMARY, SECONDARY, BOTH)

EMPTY_SEGMENTS_TEXT = "—"

Interval = Tuple[int, int]

# the features.json header always shows these, as a placeholder when absent
DEFAULT_METRICS = ("max_act", "threshold", "overlap_frac_feature_in_behavior")

# record key, then the features.json name it replaces
PRIMARY_KEYS = ("primary_segments", "behavior_segments")
SECONDARY_KEYS = ("secondary_segments", "feature_segments")
SCORE_KEYS = ("position_scores", "top_positions")
STRUCTURAL_KEYS = frozenset(("sequence", "accession", "behavior") + PRIMARY_KEYS + SECONDARY_KEYS + SCORE_KEYS)

_SCALAR_TYPES = (str, int, float, bool)


@dataclass(frozen=True)
class ResidueView:
    position: int
    residue: str
    category: str
    scored: bool = False
    score: Optional[float] = None

    def to_payload(self) -> Dict[str, object]:
        return {
            "position": self.position,
            "residue": self.residue,
            "category": self.category,
            "scored": self.scored,
            "score": self.score,
        }


@dataclass(frozen=True)
class SequenceLine:
    start: int
    end: int
    residues: Tuple[ResidueView, ...]

    def to_payload(self) -> Dict[str, object]:
        return {
            "start": self.start,
            "end": self.end,
            "residues": [residue.to_payload() for residue in self.residues],
        }


@dataclass
class AnnotatedView:
    length: int
    lines: List[SequenceLine]
    primary_segments: List[Interval]
    secondary_segments: List[Interval]
    metrics: Dict[str, Any] = field(default_factory=dict)
    accession: Optional[str] = None
    behavior: Optional[str] = None

    def residue(self, position: int) -> ResidueView:
        """Look up a residue by its 1-indexed position."""
        if self.length == 0 or not 1 <= position <= self.length:
            raise IndexError(f"position {position} is outside 1-{self.length}")
        line_length = len(self.lines[0].residues)
        line = self.lines[(position - 1) // line_length]
        return line.residues[position - line.start]

    def to_payload(self) -> Dict[str, object]:
        return {
            "accession": self.accession,
            "behavior": self.behavior,
            "length": self.length,
            "primary_segments": [list(segment) for segment in self.primary_segments],
            "secondary_segments": [list(segment) for segment in self.secondary_segments],
            "primary_segments_text": format_segments(self.primary_segments),
            "secondary_segments_text": format_segments(self.secondary_segments),
            "metrics": dict(self.metrics),
            "lines": [line.to_payload() for line in self.lines],
        }


def normalize_intervals(intervals: Any, length: int) -> List[Interval]:
    """Clamp raw ``[start, end]`` pairs into ``[0, length - 1]``.

    Entries that are not two-element numeric pairs are dropped. Reversed
    pairs are swapped after clamping. Returned intervals stay 0-indexed.
    """
    if length <= 0:
        return []
    last = length - 1
    normalized: List[Interval] = []
    for entry in optional_list(intervals):
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            continue
        start = finite_number(entry[0])
        end = finite_number(entry[1])
        if start is None or end is None:
            continue
        start_idx = max(0, min(last, int(start)))
        end_idx = max(0, min(last, int(end)))
        if end_idx < start_idx:
            start_idx, end_idx = end_idx, start_idx
        normalized.append((start_idx, end_idx))
    return normalized


def intervals_to_mask(intervals: Sequence[Interval], length: int) -> np.ndarray:
    mask = np.zeros(max(0, length), dtype=bool)
    for start, end in intervals:
        mask[start : end + 1] = True
    return mask


def position_score_map(position_scores: Any) -> Dict[float, float]:
    scores: Dict[float, float] = {}
    for entry in optional_list(position_scores):
        if not isinstance(entry, Mapping):
            continue
        position = finite_number(entry.get("pos"))
        score = finite_number(entry.get("act"))
        if position is None or score is None:
            continue
        scores[position] = score
    return scores


def classify_residue(in_primary: bool, in_secondary: bool) -> str:
    if in_primary and in_secondary:
        return BOTH
    if in_primary:
        return PRIMARY
    if in_secondary:
        return SECONDARY
    return PLAIN


def to_display_intervals(intervals: Sequence[Interval]) -> List[Interval]:
    return [(start + 1, end + 1) for start, end in intervals]


def format_segments(display_intervals: Sequence[Interval]) -> str:
    if not display_intervals:
        return EMPTY_SEGMENTS_TEXT
    return ", ".join(f"{start}-{end}" for start, end in display_intervals)


def annotate(
    sequence: Any,
    primary_intervals: Any,
    secondary_intervals: Any,
    position_scores: Any,
    line_length: int = DEFAULT_LINE_LENGTH,
    metrics: Optional[Mapping[str, Any]] = None,
) -> AnnotatedView:
    if not isinstance(sequence, str):
        raise InvalidInputError("sequence must be a string")
    line_length = to_int(line_length, positive=True, name="line_length")

    length = len(sequence)
    primary = normalize_intervals(primary_intervals, length)
    secondary = normalize_intervals(secondary_intervals, length)
    primary_mask = intervals_to_mask(primary, length)
    secondary_mask = intervals_to_mask(secondary, length)
    scores = position_score_map(position_scores)

    lines: List[SequenceLine] = []
    for start in range(0, length, line_length):
        end = min(length, start + line_length)
        residues = []
        for idx in range(start, end):
            score = scores.get(idx)
            residues.append(
                ResidueView(
                    position=idx + 1,
                    residue=sequence[idx],
                    category=classify_residue(bool(primary_mask[idx]), bool(secondary_mask[idx])),
                    scored=score is not None,
                    score=score,
                )
            )
        lines.append(SequenceLine(start=start + 1, end=end, residues=tuple(residues)))

    return AnnotatedView(
        length=length,
        lines=lines,
        primary_segments=to_display_intervals(primary),
        secondary_segments=to_display_intervals(secondary),
        metrics=dict(metrics or {}),
    )


def _first_present(record: Mapping, keys: Sequence[str]) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


def example_metrics(record: Mapping) -> Dict[str, Any]:
    metrics: Dict[str, Any] = {name: None for name in DEFAULT_METRICS}
    for key, value in record.items():
        if key in STRUCTURAL_KEYS:
            continue
        if value is None or isinstance(value, _SCALAR_TYPES):
            metrics[key] = value
    return metrics


def annotate_example(record: Any, line_length: int = DEFAULT_LINE_LENGTH) -> AnnotatedView:
    """Annotate one sequence record.

    ``primary_segments``, ``secondary_segments`` and ``position_scores`` are
    read first. Records from ``features.json`` use ``behavior_segments``,
    ``feature_segments`` and ``top_positions`` for the same roles. Every
    other scalar field is copied into the metrics untouched.
    """
    if not isinstance(record, Mapping):
        raise InvalidInputError("example must be an object")
    sequence = record.get("sequence")
    if sequence is None:
        raise InvalidInputError("example is missing 'sequence'")

    view = annotate(
        sequence,
        _first_present(record, PRIMARY_KEYS),
        _first_present(record, SECONDARY_KEYS),
        _first_present(record, SCORE_KEYS),
        line_length=line_length,
        metrics=example_metrics(record),
    )
    accession = record.get("accession")
    behavior = record.get("behavior")
    view.accession = str(accession) if accession is not None else None
    view.behavior = str(behavior) if behavior is not None else None
    return view
