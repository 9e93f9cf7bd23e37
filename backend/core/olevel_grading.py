"""
olevel_grading.py — O-Level (CSEE) grading helpers.

Provides:
  - Marks -> grade/points mapping (A=1 ... F=5)
  - Grade remarks
  - Division classification from a points total (I, II, III, IV, 0)
  - Best-seven subject selection
  - Weighted continuous-assessment marks
  - Batch recomputation of grade/points for entered marks

Every function here is pure: invalid numeric input, including marks outside
0-100, resolves to a sentinel ("-" grade, 0 points, division "0") instead of
raising.
"""

import logging
from typing import Any, Dict, List, Optional

from core.values import to_number

logger = logging.getLogger(__name__)


# Grade bands (min_marks, grade, points, remarks). Ordered high to low.
OLEVEL_GRADES = [
    (75.0, "A", 1, "Excellent"),
    (65.0, "B", 2, "Very Good"),
    (45.0, "C", 3, "Good"),
    (30.0, "D", 4, "Satisfactory"),
    (0.0, "F", 5, "Fail"),
]

# Division bands (min_points, max_points, division), inclusive.
DIVISION_BANDS = [
    (7, 17, "I"),
    (18, 21, "II"),
    (22, 25, "III"),
    (26, 33, "IV"),
]

DIVISIONS = ["I", "II", "III", "IV", "0"]
VALID_GRADES = [grade for _, grade, _, _ in OLEVEL_GRADES]
BEST_SUBJECT_COUNT = 7

MIN_MARKS = 0.0
MAX_MARKS = 100.0

INVALID_GRADE = "-"
PLACEHOLDER_GRADE = "N/A"

REMARKS = {grade: remark for _, grade, _, remark in OLEVEL_GRADES}


def to_marks(value: Any) -> Optional[float]:
    """Marks as a float within 0-100, None when non-numeric or out of range."""
    number = to_number(value)
    if number is None or not MIN_MARKS <= number <= MAX_MARKS:
        return None
    return number


# ── Grade Mapper ────────────────────────────────────────────────────

def get_grade_and_points(marks: Any) -> Dict[str, Any]:
    """Return {"grade", "points"} for a 0-100 marks value."""
    if marks is None:
        return {"grade": INVALID_GRADE, "points": 0}

    value = to_marks(marks)
    if value is None:
        logger.warning("Invalid marks value for O-Level grading: %r", marks)
        return {"grade": INVALID_GRADE, "points": 0}

    for min_marks, grade, points, _ in OLEVEL_GRADES:
        if value >= min_marks:
            return {"grade": grade, "points": points}

    return {"grade": "F", "points": 5}


def get_remarks(grade: Any) -> str:
    """Return the remark for a grade letter, "-" for anything else."""
    return REMARKS.get(grade, "-") if isinstance(grade, str) else "-"


def get_all_grade_thresholds() -> List[Dict[str, Any]]:
    """Return the full O-Level grade scale for legend/reference."""
    thresholds = []
    for idx, (min_marks, grade, points, remark) in enumerate(OLEVEL_GRADES):
        max_marks = 100.0 if idx == 0 else OLEVEL_GRADES[idx - 1][0] - 0.01
        thresholds.append(
            {
                "min": min_marks,
                "max": round(max_marks, 2),
                "grade": grade,
                "points": points,
                "remarks": remark,
            }
        )
    return thresholds


# ── Division Classifier ─────────────────────────────────────────────

def get_division(points: Any) -> str:
    """Map a best-seven points total to a division, "0" when out of band."""
    value = to_number(points)
    if value is None:
        logger.warning("Invalid points value for O-Level division: %r", points)
        return "0"

    for min_points, max_points, division in DIVISION_BANDS:
        if min_points <= value <= max_points:
            return division
    return "0"


def get_division_bands() -> List[Dict[str, Any]]:
    """Division bands for legends; the final band is open-ended."""
    bands = [
        {"division": division, "min_points": lo, "max_points": hi}
        for lo, hi, division in DIVISION_BANDS
    ]
    bands.append({"division": "0", "min_points": DIVISION_BANDS[-1][1] + 1, "max_points": None})
    return bands


# ── Best-Seven Selection ────────────────────────────────────────────

def _is_unscored(result: Dict[str, Any]) -> bool:
    """True when a result carries no usable marks and no real grade."""
    raw = result.get("marks_obtained")
    marks = to_marks(raw)
    # Unreadable or out-of-range marks discredit any stored grade.
    if raw is not None and marks is None:
        return True
    if result.get("grade") in VALID_GRADES:
        return False
    return marks is None or marks == 0


def _with_points(result: Dict[str, Any]) -> Dict[str, Any]:
    if result.get("points") is not None and result.get("grade") is not None:
        return result
    graded = dict(result)
    graded.update(get_grade_and_points(result.get("marks_obtained")))
    return graded


def compute_best_seven(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Select the best (lowest-points) seven subjects and classify the division.

    Results with no recorded marks and no grade are ignored, as are placeholder
    and sentinel grades. Ties on points keep their input order.

    Returns:
      - best_seven_results: the selected results, best first
      - best_seven_points: sum of their points
      - division: division for that total
    """
    if not isinstance(results, (list, tuple)):
        raise TypeError("results must be a list of subject results")

    candidates = [_with_points(r) for r in results if not _is_unscored(r)]
    valid = [
        r for r in candidates
        if r.get("grade") in VALID_GRADES and (to_number(r.get("points")) or 0) > 0
    ]

    ranked = sorted(valid, key=lambda r: to_number(r.get("points")))
    best = ranked[:BEST_SUBJECT_COUNT]
    best_points = int(sum(to_number(r.get("points")) for r in best))

    logger.debug(
        "Best-seven selection: %d results, %d valid, %d selected, %d points",
        len(results), len(valid), len(best), best_points,
    )

    return {
        "best_seven_results": best,
        "best_seven_points": best_points,
        "division": get_division(best_points),
    }


# ── Assessment Weighting & Batch Entry ──────────────────────────────

def compute_weighted_marks(assessments: List[Dict[str, Any]]) -> Optional[float]:
    """
    Combine weighted assessments into final marks out of 100.

    Each assessment needs "weightage" (percent) and "marks_obtained" (0-100).
    Weightages must total 100.
    """
    if not assessments:
        return None

    total_weight = sum(to_number(a.get("weightage")) or 0 for a in assessments)
    if abs(total_weight - 100) > 1e-9:
        raise ValueError(f"Total assessment weightage must equal 100, got {total_weight:g}")

    weighted = 0.0
    for assessment in assessments:
        marks = to_number(assessment.get("marks_obtained", assessment.get("marksObtained")))
        weighted += (marks or 0) * (to_number(assessment.get("weightage")) or 0) / 100
    return round(weighted, 2)


def grade_results(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Recompute marks, grade, points and remarks for a batch of entered results."""
    if not isinstance(results, (list, tuple)):
        raise TypeError("results must be a list of subject results")

    graded = []
    for result in results:
        record = dict(result)
        if record.get("assessments"):
            record["marks_obtained"] = compute_weighted_marks(record["assessments"])
        record.update(get_grade_and_points(record.get("marks_obtained")))
        record["remarks"] = get_remarks(record["grade"])
        graded.append(record)
    return graded
