"""
report_builder.py — O-Level class and student report assembly.

Builds:
- Class Report   (ranked students, subject analysis, division summary, class average)
- Student Report (subject breakdown, summary block, rank among classmates)
- Excel Export   (class results, subject analysis and division summary sheets)

Grades and points in every report are derived from marks with the O-Level
grade mapper. Missing data never raises: absent marks become placeholder
entries and the payload carries a `warning` string instead.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from core.olevel_grading import (
    DIVISIONS,
    INVALID_GRADE,
    PLACEHOLDER_GRADE,
    VALID_GRADES,
    compute_best_seven,
    get_grade_and_points,
    get_remarks,
    to_marks,
)
from core.ranking import compute_subject_positions, rank_entities
from core.records import id_key, normalize_results, normalize_student, normalize_students, normalize_subjects
from core.stats import compute_subject_analysis
from core.values import parse_timestamp

logger = logging.getLogger(__name__)

EDUCATION_LEVEL = "O_LEVEL"

NO_STUDENTS_WARNING = (
    "No students found in this class. "
    "The report will update automatically when students are added."
)
NO_MARKS_WARNING = (
    "No marks have been entered for any student in this class and exam. "
    "The report will update automatically as marks are entered."
)
NO_STUDENT_RESULTS_WARNING = "No results found for this student in this exam."


# ── Helpers ─────────────────────────────────────────────────────────

def _empty_division_summary() -> Dict[str, int]:
    return {division: 0 for division in DIVISIONS}


def _is_newer(candidate: Dict[str, Any], current: Dict[str, Any]) -> bool:
    new_ts = parse_timestamp(candidate.get("updated_at"))
    old_ts = parse_timestamp(current.get("updated_at"))
    return new_ts is not None and (old_ts is None or new_ts > old_ts)


def _index_results(
    results: List[Dict[str, Any]],
    exam_id: Any,
    class_id: Any = None,
) -> Dict[Tuple[str, str], Dict[str, Any]]:
    """
    Map (student_id, subject_id) -> result for one exam.

    When duplicates exist the most recently updated record wins, otherwise the
    first one seen.
    """
    exam_key = id_key(exam_id)
    class_key = id_key(class_id)
    index: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for result in results:
        if exam_key is not None and result.get("exam_id") != exam_key:
            continue
        if class_key is not None and result.get("class_id") not in (None, class_key):
            continue
        if result.get("student_id") is None or result.get("subject_id") is None:
            continue
        key = (result["student_id"], result["subject_id"])
        if key not in index or _is_newer(result, index[key]):
            index[key] = result
    return index


def applicable_subjects(
    student: Dict[str, Any],
    subjects: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Core subjects plus the optional subjects the student selected.

    When no selection is known every subject is assumed.
    """
    selected = student.get("selected_subjects")
    if not selected:
        return list(subjects)
    chosen = set(selected)
    return [s for s in subjects if s["type"] == "CORE" or s["subject_id"] in chosen]


def _subject_entry(subject: Dict[str, Any], result: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    entry = {
        "subject_id": subject["subject_id"],
        "subject": subject["name"],
        "code": subject["code"],
        "takes_subject": True,
    }
    if result is None:
        entry.update({
            "marks": 0,
            "grade": PLACEHOLDER_GRADE,
            "points": 0,
            "remarks": "No marks entered",
        })
        return entry

    # Out-of-range marks are treated like unreadable ones.
    marks = to_marks(result.get("marks_obtained"))
    graded = get_grade_and_points(marks) if marks is not None else {"grade": INVALID_GRADE, "points": 0}
    entry.update({
        "marks": marks if marks is not None else 0,
        "grade": graded["grade"],
        "points": graded["points"],
        "remarks": get_remarks(graded["grade"]),
    })
    if result.get("comment"):
        entry["comment"] = result["comment"]
    return entry


# ── Student Aggregate ───────────────────────────────────────────────

def build_student_aggregate(
    student: Dict[str, Any],
    subjects: List[Dict[str, Any]],
    results_index: Dict[Tuple[str, str], Dict[str, Any]],
) -> Dict[str, Any]:
    """Subject breakdown, totals, best-seven points and division for one student."""
    student_id = student["student_id"]
    entries = [
        _subject_entry(subject, results_index.get((student_id, subject["subject_id"])))
        for subject in applicable_subjects(student, subjects)
    ]
    entries.sort(key=lambda e: e["subject"].lower())

    valid = [e for e in entries if e["grade"] in VALID_GRADES]
    total_marks = float(sum(e["marks"] for e in valid))
    average_marks = total_marks / len(valid) if valid else 0.0
    total_points = int(sum(e["points"] for e in valid))

    best = compute_best_seven([{**e, "marks_obtained": e["marks"]} for e in entries])

    grade_distribution = {grade: 0 for grade in VALID_GRADES}
    for entry in valid:
        grade_distribution[entry["grade"]] += 1

    return {
        "student_id": student_id,
        "name": student.get("name", ""),
        "roll_number": student.get("roll_number", ""),
        "gender": student.get("gender", "N/A"),
        "results": entries,
        "total_marks": round(total_marks, 2),
        "average_marks": f"{average_marks:.2f}",
        "total_points": total_points,
        "best_seven_points": best["best_seven_points"],
        "division": best["division"],
        "grade_distribution": grade_distribution,
        "has_results": bool(valid),
    }


# ── Class Report ────────────────────────────────────────────────────

def _empty_class_report(class_id, exam_id, subjects, meta, warning) -> Dict[str, Any]:
    return {
        "class_id": class_id,
        "exam_id": exam_id,
        "class_name": meta.get("class_name"),
        "exam_name": meta.get("exam_name"),
        "academic_year": meta.get("academic_year"),
        "subjects": [
            {"subject_id": s["subject_id"], "name": s["name"], "code": s["code"]}
            for s in subjects
        ],
        "students": [],
        "subject_analysis": [],
        "class_average": "0.00",
        "division_summary": _empty_division_summary(),
        "total_students": 0,
        "students_with_results": 0,
        "education_level": EDUCATION_LEVEL,
        "warning": warning,
    }


def build_class_report(
    class_id: Any,
    exam_id: Any,
    students: List[Dict[str, Any]],
    all_results: List[Dict[str, Any]],
    subject_catalog: List[Dict[str, Any]],
    **meta: Any,
) -> Dict[str, Any]:
    """
    Ranked class report for one exam.

    `students`, `all_results` and `subject_catalog` may be raw or normalized
    records. Optional keyword metadata (class_name, exam_name,
    academic_year) is copied into the payload.
    """
    roster = normalize_students(students)
    records = normalize_results(all_results)
    subjects = sorted(normalize_subjects(subject_catalog), key=lambda s: s["name"].lower())

    if not roster:
        logger.warning("No students found in class %s", class_id)
        return _empty_class_report(class_id, exam_id, subjects, meta, NO_STUDENTS_WARNING)

    index = _index_results(records, exam_id, class_id)
    aggregates = [build_student_aggregate(student, subjects, index) for student in roster]

    # Position in subject across the class
    positions = compute_subject_positions([
        {
            "student_id": agg["student_id"],
            "marks_by_subject": {
                e["subject_id"]: e["marks"] for e in agg["results"] if e["grade"] in VALID_GRADES
            },
        }
        for agg in aggregates
    ])
    position_lookup = {
        (p["student_id"], subject_id): p["position"]
        for subject_id, ranked in positions.items()
        for p in ranked
    }
    for agg in aggregates:
        for entry in agg["results"]:
            entry["position"] = position_lookup.get((agg["student_id"], entry["subject_id"]))

    ranked_students = rank_entities(aggregates, metric="average_marks", direction="desc")

    division_summary = _empty_division_summary()
    for agg in aggregates:
        if agg["has_results"]:
            division_summary[agg["division"]] += 1

    averages = [float(agg["average_marks"]) for agg in aggregates]
    class_average = float(np.mean(averages)) if averages else 0.0

    subject_analysis = compute_subject_analysis(
        subjects,
        [entry for agg in aggregates for entry in agg["results"]],
    )

    with_results = sum(1 for agg in aggregates if agg["has_results"])
    warning = None
    if with_results == 0:
        warning = NO_MARKS_WARNING
    elif with_results < len(aggregates):
        pct = round(with_results / len(aggregates) * 100)
        warning = (
            f"Showing real-time data: {with_results} out of {len(aggregates)} students "
            f"have marks entered ({pct}%). The report will update automatically "
            "as more marks are entered."
        )

    logger.info(
        "Built O-Level class report for class %s, exam %s: %d students, %d with results",
        class_id, exam_id, len(aggregates), with_results,
    )

    report = _empty_class_report(class_id, exam_id, subjects, meta, warning)
    report.update({
        "students": ranked_students,
        "subject_analysis": subject_analysis,
        "class_average": f"{class_average:.2f}",
        "division_summary": division_summary,
        "total_students": len(aggregates),
        "students_with_results": with_results,
    })
    return report


# ── Student Report ──────────────────────────────────────────────────

def build_student_report(
    student_id: Any,
    exam_id: Any,
    results: List[Dict[str, Any]],
    subject_catalog: List[Dict[str, Any]],
    student: Optional[Dict[str, Any]] = None,
    classmates: Optional[List[Dict[str, Any]]] = None,
    **meta: Any,
) -> Dict[str, Any]:
    """
    Single-student report with a summary block.

    `results` may include classmates' results; only the requested exam is
    used. When `classmates` is given the student is ranked by average marks
    among classmates that have results.
    """
    student_key = id_key(student_id)
    profile = normalize_student(student) if student is not None else {
        "student_id": student_key,
        "name": student_key or "",
        "roll_number": "",
        "gender": "N/A",
        "selected_subjects": None,
    }
    profile["student_id"] = student_key

    records = normalize_results(results)
    subjects = sorted(normalize_subjects(subject_catalog), key=lambda s: s["name"].lower())
    index = _index_results(records, exam_id)

    aggregate = build_student_aggregate(profile, subjects, index)

    rank = None
    total_students = None
    if classmates is not None:
        roster = normalize_students(classmates)
        if student_key not in {s["student_id"] for s in roster}:
            roster.append(profile)
        peers = [build_student_aggregate(s, subjects, index) for s in roster]
        ranked = rank_entities([p for p in peers if p["has_results"]], metric="average_marks")
        rank = next((p["rank"] for p in ranked if p["student_id"] == student_key), None)
        total_students = len(roster)

    warning = None if aggregate["has_results"] else NO_STUDENT_RESULTS_WARNING
    if warning:
        logger.warning("No results for student %s in exam %s", student_key, exam_id)

    return {
        "student_id": student_key,
        "exam_id": exam_id,
        "exam_name": meta.get("exam_name"),
        "academic_year": meta.get("academic_year"),
        "student": {
            "student_id": student_key,
            "name": aggregate["name"],
            "roll_number": aggregate["roll_number"],
            "gender": aggregate["gender"],
        },
        "subject_results": aggregate["results"],
        "summary": {
            "total_marks": aggregate["total_marks"],
            "average_marks": aggregate["average_marks"],
            "total_points": aggregate["total_points"],
            "best_seven_points": aggregate["best_seven_points"],
            "division": aggregate["division"],
            "rank": rank,
            "total_students": total_students,
            "grade_distribution": aggregate["grade_distribution"],
        },
        "education_level": EDUCATION_LEVEL,
        "warning": warning,
    }


# ── Excel Export ────────────────────────────────────────────────────

def generate_class_report_excel(
    output_path: str,
    report: Dict[str, Any],
    school_name: str,
):
    """Export a built class report to Excel: results, subject analysis, division summary."""
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
    division_fills = {
        "I": PatternFill(start_color="d5f5e3", end_color="d5f5e3", fill_type="solid"),
        "II": PatternFill(start_color="e8f8f5", end_color="e8f8f5", fill_type="solid"),
        "III": PatternFill(start_color="fef9e7", end_color="fef9e7", fill_type="solid"),
        "IV": PatternFill(start_color="fdebd0", end_color="fdebd0", fill_type="solid"),
        "0": PatternFill(start_color="fadbd8", end_color="fadbd8", fill_type="solid"),
    }
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def _style_sheet(ws, header_row: int = 1):
        """Apply formatting to a worksheet."""
        for cell in ws[header_row]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
            cell.border = thin_border

        for row in ws.iter_rows(min_row=header_row + 1, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
                cell.alignment = Alignment(horizontal="center")

        ws.freeze_panes = ws.cell(row=header_row + 1, column=1)

        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 30)

    subjects = report.get("subjects", [])
    wb = Workbook()

    # ── Sheet 1: Class Results ──────────────────────────────────────
    ws_results = wb.active
    ws_results.title = "Class Results"
    ws_results.sheet_properties.tabColor = "1a1a2e"
    title = " - ".join(str(p) for p in (school_name, report.get("class_name"), report.get("exam_name")) if p)
    ws_results.append([title])
    ws_results["A1"].font = Font(bold=True, size=13)

    header = ["Rank", "Name", "Roll No", "Sex"]
    header += [s["code"] for s in subjects]
    header += ["Total", "Average", "Points", "Division"]
    ws_results.append(header)

    for student in report.get("students", []):
        by_subject = {e["subject_id"]: e for e in student["results"]}
        row = [student.get("rank"), student["name"], student["roll_number"], student["gender"]]
        for subject in subjects:
            entry = by_subject.get(subject["subject_id"])
            if entry is None:
                row.append("")
            elif entry["grade"] in VALID_GRADES:
                row.append(f"{entry['marks']:g} {entry['grade']}")
            else:
                row.append(entry["grade"])
        row += [
            student["total_marks"],
            student["average_marks"],
            student["best_seven_points"],
            student["division"],
        ]
        ws_results.append(row)
        fill = division_fills.get(student["division"]) if student["has_results"] else None
        if fill is not None:
            ws_results.cell(row=ws_results.max_row, column=len(row)).fill = fill
    _style_sheet(ws_results, header_row=2)

    # ── Sheet 2: Subject Analysis ───────────────────────────────────
    ws_subjects = wb.create_sheet(title="Subject Analysis")
    ws_subjects.sheet_properties.tabColor = "0f3460"
    ws_subjects.append(
        ["Subject", "Code", "Students", "Average", "Highest", "Lowest", "GPA"] + VALID_GRADES
    )
    for analysis in report.get("subject_analysis", []):
        ws_subjects.append([
            analysis["name"],
            analysis["code"],
            analysis["student_count"],
            analysis["average_marks"],
            analysis["highest_marks"],
            analysis["lowest_marks"],
            analysis["gpa"],
        ] + [analysis["grades"][g] for g in VALID_GRADES])
    _style_sheet(ws_subjects)

    # ── Sheet 3: Division Summary ───────────────────────────────────
    ws_divisions = wb.create_sheet(title="Division Summary")
    ws_divisions.sheet_properties.tabColor = "2ecc71"
    ws_divisions.append(["Division", "Students"])
    for division, count in report.get("division_summary", {}).items():
        ws_divisions.append([division, count])
    ws_divisions.append(["Class Average", report.get("class_average", "0.00")])
    _style_sheet(ws_divisions)

    wb.save(output_path)
