"""
stats.py — numpy/scipy statistics for class and subject results.

Computes:
- Class statistics over a list of marks (mean, median, mode, population std)
- Per-subject analysis (average/highest/lowest marks, grade distribution,
  GPA on the 1-5 points scale, plus the class statistics above)
"""

from typing import Any, Dict, List

import numpy as np
from scipy import stats as sp_stats

from core.olevel_grading import VALID_GRADES
from core.values import to_number


# ── Helpers ─────────────────────────────────────────────────────────

def _round2(val) -> float:
    return float(round(float(val), 2))


def _sanitize(obj):
    """Recursively coerce numpy scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


# ── Class Statistics ────────────────────────────────────────────────

def compute_class_statistics(marks: List[Any]) -> Dict[str, float]:
    """
    Mean, median, mode and population standard deviation of a list of marks.

    Non-numeric entries are skipped; an empty list gives all zeros. Mode ties
    resolve to the smallest tied value. All outputs are rounded to 2 decimals.
    """
    if not isinstance(marks, (list, tuple, np.ndarray)):
        raise TypeError("marks must be a list of numbers")

    values = np.array(
        [v for v in (to_number(m) for m in marks) if v is not None],
        dtype=float,
    )
    if values.size == 0:
        return {"mean": 0.0, "median": 0.0, "mode": 0.0, "standard_deviation": 0.0}

    mode = sp_stats.mode(values, keepdims=False).mode

    return _sanitize({
        "mean": _round2(np.mean(values)),
        "median": _round2(np.median(values)),
        "mode": _round2(mode),
        "standard_deviation": _round2(np.std(values, ddof=0)),
    })


# ── Subject Analysis ────────────────────────────────────────────────

def _empty_grade_counts() -> Dict[str, int]:
    return {grade: 0 for grade in VALID_GRADES}


def compute_subject_analysis(
    subjects: List[Dict[str, Any]],
    entries: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Per-subject aggregates across a class.

    `subjects` are normalized catalog entries; `entries` are graded subject
    results carrying subject_id, marks, grade and points. Only entries with a
    real grade (A-F) are counted.
    """
    grouped: Dict[str, List[Dict[str, Any]]] = {s["subject_id"]: [] for s in subjects}
    for entry in entries:
        if entry.get("grade") in VALID_GRADES and entry.get("subject_id") in grouped:
            grouped[entry["subject_id"]].append(entry)

    analysis = []
    for subject in subjects:
        graded = grouped[subject["subject_id"]]
        grades = _empty_grade_counts()
        for entry in graded:
            grades[entry["grade"]] += 1

        marks = [float(e["marks"]) for e in graded]
        count = len(graded)
        if count:
            total_points = sum(int(e["points"]) for e in graded)
            class_stats = compute_class_statistics(marks)
            row = {
                "average_marks": f"{np.mean(marks):.2f}",
                "highest_marks": _round2(max(marks)),
                "lowest_marks": _round2(min(marks)),
                "gpa": f"{total_points / count:.2f}",
                **{k: class_stats[k] for k in ("median", "mode", "standard_deviation")},
            }
        else:
            row = {
                "average_marks": "0.00",
                "highest_marks": 0.0,
                "lowest_marks": 0.0,
                "gpa": "0.00",
                "median": 0.0,
                "mode": 0.0,
                "standard_deviation": 0.0,
            }

        analysis.append({
            "subject_id": subject["subject_id"],
            "name": subject["name"],
            "code": subject["code"],
            "student_count": count,
            "grades": grades,
            **row,
        })

    return _sanitize(analysis)
