"""
consistency.py — Result-set consistency checks and fix planning.

Detects:
- Duplicate results (same student + exam + subject)
- Stored grade/points that disagree with the O-Level grade mapper
- Orphaned results (student, exam or subject id that no longer resolves)
- Results missing a required identifier or marks
- Marks that are non-numeric or outside 0-100

Checks are read-only. Corrections are a separate, explicit step:
plan_fixes() turns a report into delete/update actions and apply_fixes()
returns a corrected copy of the result list.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from core.olevel_grading import MAX_MARKS, MIN_MARKS, get_grade_and_points, to_marks
from core.records import known_ids, normalize_results
from core.values import parse_timestamp, to_number

logger = logging.getLogger(__name__)

DUPLICATE_KEYS = ["student_id", "exam_id", "subject_id"]
REQUIRED_FIELDS = ["student_id", "exam_id", "subject_id", "marks_obtained"]


def _result_ref(result: Dict[str, Any], position: int) -> Any:
    """Record id, or its position in the input when the record has none."""
    return result["id"] if result.get("id") is not None else f"#{position}"


# ── Individual Checks ───────────────────────────────────────────────

def find_duplicate_results(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Group results sharing student/exam/subject; only groups of 2+ are returned."""
    if not results:
        return []

    df = pd.DataFrame([{k: r.get(k) for k in DUPLICATE_KEYS} for r in results])
    df["_position"] = range(len(results))
    keyed = df.dropna(subset=DUPLICATE_KEYS)
    dupes = keyed[keyed.duplicated(subset=DUPLICATE_KEYS, keep=False)]

    groups = []
    for key, group in dupes.groupby(DUPLICATE_KEYS, sort=False):
        members = [results[int(p)] for p in group["_position"]]
        groups.append({
            "key": dict(zip(DUPLICATE_KEYS, key)),
            "count": len(members),
            "results": [
                {
                    "id": _result_ref(m, int(p)),
                    "marks": m.get("marks_obtained"),
                    "grade": m.get("grade"),
                    "points": m.get("points"),
                    "updated_at": m.get("updated_at"),
                }
                for m, p in zip(members, group["_position"])
            ],
        })
    return groups


def _marks_value(raw: Any) -> Any:
    """Numeric marks as a float; anything unreadable is reported as given."""
    number = to_number(raw)
    return raw if number is None else number


def find_incorrect_grades(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Results whose stored grade or points differ from the grade mapper's output.

    Unusable marks map to the "-"/0 sentinel, so a real grade stored against
    them is reported here too.
    """
    incorrect = []
    for position, result in enumerate(results):
        raw = result.get("marks_obtained")
        if raw is None:
            continue
        marks = _marks_value(raw)
        expected = get_grade_and_points(raw)
        stored_points = to_number(result.get("points"))
        if result.get("grade") != expected["grade"] or stored_points != expected["points"]:
            incorrect.append({
                "id": _result_ref(result, position),
                "student_id": result.get("student_id"),
                "exam_id": result.get("exam_id"),
                "subject_id": result.get("subject_id"),
                "marks": marks,
                "current_grade": result.get("grade"),
                "expected_grade": expected["grade"],
                "current_points": result.get("points"),
                "expected_points": expected["points"],
            })
    return incorrect


def find_orphaned_results(
    results: List[Dict[str, Any]],
    student_ids: Optional[set],
    exam_ids: Optional[set],
    subject_ids: Optional[set],
) -> List[Dict[str, Any]]:
    """
    Results pointing at a student, exam or subject that is not known.

    A None id set skips that dimension; missing ids are reported by
    find_missing_fields instead.
    """
    checks = [
        ("student_id", student_ids, "Missing student"),
        ("exam_id", exam_ids, "Missing exam"),
        ("subject_id", subject_ids, "Missing subject"),
    ]
    orphaned = []
    for position, result in enumerate(results):
        reasons = [
            reason for field, ids, reason in checks
            if ids is not None and result.get(field) is not None and result[field] not in ids
        ]
        if reasons:
            orphaned.append({
                "id": _result_ref(result, position),
                "reasons": reasons,
                "student_id": result.get("student_id"),
                "exam_id": result.get("exam_id"),
                "subject_id": result.get("subject_id"),
            })
    return orphaned


def find_missing_fields(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    missing = []
    for position, result in enumerate(results):
        fields = [f for f in REQUIRED_FIELDS if result.get(f) is None]
        if fields:
            missing.append({"id": _result_ref(result, position), "missing_fields": fields})
    return missing


def find_invalid_marks(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Results whose marks are present but non-numeric or outside 0-100."""
    invalid = []
    for position, result in enumerate(results):
        raw = result.get("marks_obtained")
        if raw is None or to_marks(raw) is not None:
            continue
        if to_number(raw) is None:
            reason = "Non-numeric marks"
        else:
            reason = f"Marks outside {MIN_MARKS:g}-{MAX_MARKS:g}"
        invalid.append({
            "id": _result_ref(result, position),
            "student_id": result.get("student_id"),
            "exam_id": result.get("exam_id"),
            "subject_id": result.get("subject_id"),
            "marks": _marks_value(raw),
            "reason": reason,
        })
    return invalid


# ── Full Check ──────────────────────────────────────────────────────

def check_consistency(
    results: List[Dict[str, Any]],
    known_students: Optional[Iterable[Any]] = None,
    known_exams: Optional[Iterable[Any]] = None,
    known_subjects: Optional[Iterable[Any]] = None,
) -> Dict[str, Any]:
    """
    Run every check over a result set.

    `results` may be raw or already-normalized records. Known entities are
    lists of ids or records; pass None to skip that orphan check.
    """
    records = normalize_results(results)

    duplicates = find_duplicate_results(records)
    incorrect = find_incorrect_grades(records)
    orphaned = find_orphaned_results(
        records,
        known_ids(known_students, ["student_id", "studentid", "id", "_id"]),
        known_ids(known_exams, ["exam_id", "examid", "id", "_id"]),
        known_ids(known_subjects, ["subject_id", "subjectid", "id", "_id"]),
    )
    missing = find_missing_fields(records)
    invalid = find_invalid_marks(records)

    summary = {
        "total_results": len(records),
        "duplicate_groups": len(duplicates),
        "incorrect_grades_or_points": len(incorrect),
        "orphaned": len(orphaned),
        "missing_required_fields": len(missing),
        "invalid_marks": len(invalid),
    }
    total_issues = (
        len(duplicates) + len(incorrect) + len(orphaned) + len(missing) + len(invalid)
    )
    logger.info(
        "Consistency check over %d results: %d duplicate groups, %d incorrect, "
        "%d orphaned, %d missing fields, %d invalid marks",
        len(records), len(duplicates), len(incorrect), len(orphaned), len(missing),
        len(invalid),
    )

    return {
        "duplicates": duplicates,
        "incorrect_grades_or_points": incorrect,
        "orphaned": orphaned,
        "missing_required_fields": missing,
        "invalid_marks": invalid,
        "summary": summary,
        "total_issues": total_issues,
    }


# ── Fix Planning ────────────────────────────────────────────────────

def _keeper(group: Dict[str, Any]) -> Any:
    """Most recently updated member; the first member when no timestamps parse."""
    members = group["results"]
    dated = [
        (stamp, idx)
        for idx, stamp in enumerate(parse_timestamp(m.get("updated_at")) for m in members)
        if stamp is not None
    ]
    if dated:
        # Earliest position wins among equal timestamps.
        latest = max(dated, key=lambda pair: (pair[0], -pair[1]))
        return members[latest[1]]["id"]
    return members[0]["id"]


def plan_fixes(report: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn a consistency report into explicit actions.

    - duplicates: keep the most recently updated record, delete the rest
    - incorrect grade/points: update to the expected values
    - orphaned: delete
    - invalid marks: listed under "review"; their grade is not rewritten
      because the marks themselves need correcting
    """
    delete: List[Any] = []
    kept: List[Any] = []
    for group in report.get("duplicates", []):
        keep_id = _keeper(group)
        kept.append(keep_id)
        delete.extend(m["id"] for m in group["results"] if m["id"] != keep_id)

    for orphan in report.get("orphaned", []):
        if orphan["id"] not in delete:
            delete.append(orphan["id"])

    review = [item["id"] for item in report.get("invalid_marks", []) if item["id"] not in delete]

    update = [
        {"id": item["id"], "grade": item["expected_grade"], "points": item["expected_points"]}
        for item in report.get("incorrect_grades_or_points", [])
        if item["id"] not in delete and item["id"] not in review
    ]

    return {"delete": delete, "update": update, "kept": kept, "review": review}


def apply_fixes(
    results: List[Dict[str, Any]],
    plan: Dict[str, Any],
) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """
    Apply a fix plan to a result list and return (fixed_results, summary).

    Records are matched by id (or "#<position>" for records without one).
    The input list and its records are left untouched.
    """
    records = normalize_results(results)
    delete = set(plan.get("delete", []))
    updates = {u["id"]: u for u in plan.get("update", [])}

    fixed: List[Dict[str, Any]] = []
    deleted = 0
    updated = 0
    for position, record in enumerate(records):
        ref = _result_ref(record, position)
        if ref in delete:
            deleted += 1
            continue
        if ref in updates:
            record = dict(record)
            record["grade"] = updates[ref]["grade"]
            record["points"] = updates[ref]["points"]
            updated += 1
        fixed.append(record)

    summary = {
        "original_results": len(records),
        "deleted": deleted,
        "updated": updated,
        "remaining_results": len(fixed),
    }
    logger.info("Applied consistency fixes: %d deleted, %d updated", deleted, updated)
    return fixed, summary


def _marks_text(marks: Any) -> str:
    return f"{marks:g}" if isinstance(marks, float) else repr(marks)


def generate_consistency_report(report: Dict[str, Any]) -> str:
    """Human-readable summary of a consistency report."""
    summary = report["summary"]
    lines = [
        "═══ Result Consistency Report ═══",
        f"Results checked: {summary['total_results']}",
        f"Total issues:    {report['total_issues']}",
        "",
        f"  Duplicate groups:            {summary['duplicate_groups']}",
        f"  Incorrect grades or points:  {summary['incorrect_grades_or_points']}",
        f"  Orphaned results:            {summary['orphaned']}",
        f"  Missing required fields:     {summary['missing_required_fields']}",
        f"  Invalid marks:               {summary.get('invalid_marks', 0)}",
    ]

    if report["incorrect_grades_or_points"]:
        lines.append("")
        lines.append("Incorrect grades:")
        for item in report["incorrect_grades_or_points"]:
            lines.append(
                f"  • {item['id']}: marks {_marks_text(item['marks'])} stored "
                f"{item['current_grade']}/{item['current_points']}, "
                f"expected {item['expected_grade']}/{item['expected_points']}"
            )

    if report.get("invalid_marks"):
        lines.append("")
        lines.append("Invalid marks:")
        for item in report["invalid_marks"]:
            lines.append(f"  • {item['id']}: {_marks_text(item['marks'])} ({item['reason']})")

    return "\n".join(lines)
