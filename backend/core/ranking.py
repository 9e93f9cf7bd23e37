"""
ranking.py — Tie-aware class rankings and per-subject positions.

Ranks use competition ("1224") semantics: equal metrics share a rank and the
next distinct value takes its 1-based position in sorted order. Marks-type
metrics rank descending (higher is better), points-type metrics ascending.
"""

from collections.abc import Mapping
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from core.values import to_number

POINTS_METRICS = {"points", "total_points", "best_seven_points"}


def _metric_value(entity: Dict[str, Any], metric: str) -> float:
    value = to_number(entity.get(metric))
    return 0.0 if value is None else value


def default_direction(metric: str) -> str:
    """Lower is better for points, higher is better for everything else."""
    return "asc" if metric in POINTS_METRICS else "desc"


def _competition_ranks(values: List[float], ascending: bool) -> List[int]:
    """Competition ranks for values in input order."""
    series = pd.Series(values, dtype=float)
    ranks = series.rank(method="min", ascending=ascending)
    return ranks.astype(int).tolist()


def rank_entities(
    entities: List[Dict[str, Any]],
    metric: str = "average_marks",
    direction: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Sort entities by `metric` and attach a `rank` field.

    Returns new dicts in ranked order; input records are not modified.
    Missing or non-numeric metric values rank as 0.
    """
    if not isinstance(entities, (list, tuple)):
        raise TypeError("entities must be a list")
    if not all(isinstance(e, Mapping) for e in entities):
        raise TypeError("every entity must be a mapping")
    direction = direction or default_direction(metric)
    if direction not in ("asc", "desc"):
        raise ValueError(f"direction must be 'asc' or 'desc', got {direction!r}")
    if not entities:
        return []

    ascending = direction == "asc"
    values = [_metric_value(e, metric) for e in entities]
    ranks = _competition_ranks(values, ascending)

    # Stable sort keeps input order among ties.
    keys = np.array(values) if ascending else -np.array(values)
    order = np.argsort(keys, kind="stable")

    ranked = []
    for idx in order:
        entity = dict(entities[idx])
        entity["rank"] = ranks[idx]
        ranked.append(entity)
    return ranked


def compute_subject_positions(students: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """
    Rank students within each subject by marks (descending).

    Each student is {"student_id", "marks_by_subject": {subject_id: marks}}.
    Students without a numeric mark for a subject are left out of that
    subject's list.
    """
    if not isinstance(students, (list, tuple)):
        raise TypeError("students must be a list")

    by_subject: Dict[str, List[Dict[str, Any]]] = {}
    for student in students:
        if not isinstance(student, Mapping):
            raise TypeError("every student must be a mapping")
        marks_by_subject = student.get("marks_by_subject") or {}
        if not isinstance(marks_by_subject, Mapping):
            raise TypeError("marks_by_subject must map subject ids to marks")
        for subject_id, marks in marks_by_subject.items():
            value = to_number(marks)
            if value is None:
                continue
            by_subject.setdefault(subject_id, []).append(
                {"student_id": student.get("student_id"), "marks": value}
            )

    positions: Dict[str, List[Dict[str, Any]]] = {}
    for subject_id, entries in by_subject.items():
        ranked = rank_entities(entries, metric="marks", direction="desc")
        positions[subject_id] = [
            {"student_id": e["student_id"], "position": e["rank"]} for e in ranked
        ]
    return positions
