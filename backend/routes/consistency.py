"""
Consistency routes — result-set checks and explicit fix application.
"""

from fastapi import APIRouter, HTTPException

from core.consistency import (
    apply_fixes,
    check_consistency,
    generate_consistency_report,
    plan_fixes,
)

router = APIRouter()


def _run_check(payload: dict) -> dict:
    results = payload.get("results")
    if results is None:
        raise HTTPException(400, "No results provided.")
    try:
        return check_consistency(
            results,
            known_students=payload.get("students"),
            known_exams=payload.get("exams"),
            known_subjects=payload.get("subjects"),
        )
    except (TypeError, ValueError) as e:
        raise HTTPException(400, str(e))


@router.post("/check")
async def check(payload: dict):
    """
    Detect duplicates, incorrect grades/points, orphaned and incomplete results.
    Expects: { "results": [...], optional "students" / "exams" / "subjects": [...] }
    Omitted entity lists skip the matching orphan check.
    """
    report = _run_check(payload)
    report["text"] = generate_consistency_report(report)
    return report


@router.post("/fix")
async def fix(payload: dict):
    """
    Check, plan and apply fixes, returning the corrected result list.
    Nothing is persisted; the caller writes the corrected records back.
    """
    report = _run_check(payload)
    plan = plan_fixes(report)
    fixed_results, summary = apply_fixes(payload["results"], plan)
    return {
        "plan": plan,
        "fix_summary": summary,
        "results": fixed_results,
        "issues_found": report["summary"],
    }
