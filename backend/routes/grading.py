"""
Grading routes — O-Level grade, division, best-seven and statistics endpoints.
"""

from fastapi import APIRouter, HTTPException

from core.olevel_grading import (
    compute_best_seven,
    get_all_grade_thresholds,
    get_division,
    get_division_bands,
    get_grade_and_points,
    get_remarks,
    grade_results,
)
from core.ranking import compute_subject_positions
from core.records import normalize_results
from core.stats import compute_class_statistics

router = APIRouter()


def _require(payload: dict, key: str):
    """Extract a required key from the request payload."""
    if key not in payload or payload[key] is None:
        raise HTTPException(400, f"Missing '{key}' in request body.")
    return payload[key]


@router.get("/scale")
async def grading_scale():
    """O-Level grade scale and division bands."""
    return {
        "grades": get_all_grade_thresholds(),
        "divisions": get_division_bands(),
    }


@router.post("/grade")
async def grade(payload: dict):
    """Grade, points and remarks for a single marks value."""
    result = get_grade_and_points(_require(payload, "marks"))
    result["remarks"] = get_remarks(result["grade"])
    return result


@router.post("/division")
async def division(payload: dict):
    """Division for a best-seven points total."""
    return {"division": get_division(_require(payload, "points"))}


@router.post("/best-seven")
async def best_seven(payload: dict):
    """Best seven subjects, their points total and the resulting division."""
    try:
        return compute_best_seven(normalize_results(_require(payload, "results")))
    except (TypeError, ValueError) as e:
        raise HTTPException(400, str(e))


@router.post("/batch")
async def batch(payload: dict):
    """
    Recompute grade and points for a batch of entered marks.
    Results carrying weighted assessments get their final marks recomputed too.
    """
    try:
        return {"results": grade_results(normalize_results(_require(payload, "results")))}
    except (TypeError, ValueError) as e:
        raise HTTPException(400, str(e))


@router.post("/statistics")
async def statistics(payload: dict):
    """Mean, median, mode and standard deviation of a list of marks."""
    try:
        return compute_class_statistics(_require(payload, "marks"))
    except TypeError as e:
        raise HTTPException(400, str(e))


@router.post("/positions")
async def positions(payload: dict):
    """Per-subject positions. Expects: { "students": [{student_id, marks_by_subject}] }"""
    try:
        return compute_subject_positions(_require(payload, "students"))
    except TypeError as e:
        raise HTTPException(400, str(e))
