"""
Tests for core/report_builder.py — class/student report payloads and Excel export.
"""

import os
import sys
import tempfile
import pytest
from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.report_builder import (
    NO_MARKS_WARNING,
    NO_STUDENTS_WARNING,
    NO_STUDENT_RESULTS_WARNING,
    applicable_subjects,
    build_class_report,
    build_student_report,
    generate_class_report_excel,
)

SCHOOL_NAME = "Test School"
EXAM = "E1"
CLASS = "C1"

SUBJECT_MARKS = {
    "MATH": "Mathematics",
    "ENG": "English",
    "KIS": "Kiswahili",
    "BIO": "Biology",
    "CHEM": "Chemistry",
    "PHY": "Physics",
    "GEO": "Geography",
    "HIST": "History",
}


@pytest.fixture
def subjects():
    return [
        {"_id": sid, "name": name, "code": sid, "type": "CORE"}
        for sid, name in SUBJECT_MARKS.items()
    ]


def _marks(student_id, marks_by_subject, exam=EXAM):
    return [
        {"studentId": student_id, "examId": exam, "subjectId": sid, "marksObtained": m}
        for sid, m in marks_by_subject.items()
    ]


@pytest.fixture
def students():
    return [
        {"_id": "S1", "firstName": "Amani", "lastName": "Mushi", "rollNumber": "001", "gender": "M"},
        {"_id": "S2", "firstName": "Neema", "lastName": "Juma", "rollNumber": "002", "gender": "F"},
        {"_id": "S3", "firstName": "Zawadi", "lastName": "Ali", "rollNumber": "003", "gender": "F"},
        {"_id": "S4", "firstName": "Baraka", "lastName": "Said", "rollNumber": "004", "gender": "M"},
    ]


@pytest.fixture
def results():
    s1 = dict(zip(SUBJECT_MARKS, [90, 85, 80, 70, 65, 50, 40, 20]))
    s2 = dict(zip(SUBJECT_MARKS, [60, 55, 50, 45, 35, 30, 25, 20]))
    s3 = dict(zip(SUBJECT_MARKS, [90, 85, 80, 70, 65, 50, 40, 20]))
    return (
        _marks("S1", s1)
        + _marks("S2", s2)
        + _marks("S3", s3)
        + _marks("S1", {"MATH": 10}, exam="E2")
    )


@pytest.fixture
def class_report(students, results, subjects):
    return build_class_report(
        CLASS, EXAM, students, results, subjects,
        class_name="Form Four A", exam_name="Terminal",
    )


class TestClassReport:
    """End-to-end class report."""

    def test_students_ranked_with_ties(self, class_report):
        ranked = class_report["students"]
        assert [s["student_id"] for s in ranked] == ["S1", "S3", "S2", "S4"]
        assert [s["rank"] for s in ranked] == [1, 1, 3, 4]

    def test_student_aggregate(self, class_report):
        top = class_report["students"][0]
        assert top["name"] == "Amani Mushi"
        assert top["total_marks"] == 500.0
        assert top["average_marks"] == "62.50"
        assert top["best_seven_points"] == 14
        assert top["division"] == "I"
        assert top["total_points"] == 19

    def test_results_sorted_by_subject_name(self, class_report):
        names = [e["subject"] for e in class_report["students"][0]["results"]]
        assert names == sorted(names, key=str.lower)

    def test_other_exam_ignored(self, class_report):
        maths = next(e for e in class_report["students"][0]["results"] if e["subject_id"] == "MATH")
        assert maths["marks"] == 90.0
        assert maths["grade"] == "A"

    def test_student_without_marks_gets_placeholders(self, class_report):
        s4 = next(s for s in class_report["students"] if s["student_id"] == "S4")
        assert s4["has_results"] is False
        assert s4["average_marks"] == "0.00"
        assert s4["division"] == "0"
        assert all(e["grade"] == "N/A" and e["points"] == 0 for e in s4["results"])
        assert all(e["remarks"] == "No marks entered" for e in s4["results"])

    def test_division_summary_counts_students_with_results(self, class_report):
        summary = class_report["division_summary"]
        assert set(summary) == {"I", "II", "III", "IV", "0"}
        assert sum(summary.values()) == 3
        assert summary["I"] == 2

    def test_class_average_over_roster(self, class_report):
        # (62.50 + 40.00 + 62.50 + 0.00) / 4
        assert class_report["class_average"] == "41.25"

    def test_subject_positions(self, class_report):
        s2 = next(s for s in class_report["students"] if s["student_id"] == "S2")
        maths = next(e for e in s2["results"] if e["subject_id"] == "MATH")
        assert maths["position"] == 3
        s4 = next(s for s in class_report["students"] if s["student_id"] == "S4")
        assert all(e["position"] is None for e in s4["results"])

    def test_subject_analysis(self, class_report):
        maths = next(a for a in class_report["subject_analysis"] if a["subject_id"] == "MATH")
        assert maths["student_count"] == 3
        assert maths["grades"]["A"] == 2
        assert maths["grades"]["C"] == 1
        assert maths["average_marks"] == "80.00"

    def test_partial_data_warning(self, class_report):
        assert class_report["warning"].startswith("Showing real-time data: 3 out of 4 students")
        assert "(75%)" in class_report["warning"]
        assert class_report["students_with_results"] == 3

    def test_metadata(self, class_report):
        assert class_report["class_name"] == "Form Four A"
        assert class_report["education_level"] == "O_LEVEL"


class TestEmptyClassReport:

    def test_no_students(self, subjects):
        report = build_class_report(CLASS, EXAM, [], [], subjects)
        assert report["students"] == []
        assert report["class_average"] == "0.00"
        assert all(v == 0 for v in report["division_summary"].values())
        assert report["warning"] == NO_STUDENTS_WARNING

    def test_students_without_any_results(self, students, subjects):
        report = build_class_report(CLASS, EXAM, students, [], subjects)
        assert len(report["students"]) == 4
        assert report["class_average"] == "0.00"
        assert all(v == 0 for v in report["division_summary"].values())
        assert all(s["rank"] == 1 for s in report["students"])
        assert report["warning"] == NO_MARKS_WARNING

    def test_rejects_non_list(self, subjects):
        with pytest.raises(TypeError):
            build_class_report(CLASS, EXAM, "students", [], subjects)


class TestUnusableMarks:

    def test_out_of_range_marks_are_not_counted(self, subjects):
        students = [{"_id": "S1", "name": "Asha"}]
        results = _marks("S1", {"MATH": 250, "ENG": 70, "KIS": -10, "BIO": "abc"})
        report = build_class_report(CLASS, EXAM, students, results, subjects)
        student = report["students"][0]
        by_subject = {e["subject_id"]: e for e in student["results"]}

        assert student["average_marks"] == "70.00"
        assert student["total_marks"] == 70.0
        for sid in ("MATH", "KIS", "BIO"):
            assert by_subject[sid]["grade"] == "-"
            assert by_subject[sid]["points"] == 0
            assert by_subject[sid]["marks"] == 0
        assert student["best_seven_points"] == 2

    def test_newest_duplicate_wins_across_timestamp_formats(self, subjects):
        results = [
            {"studentId": "S1", "examId": EXAM, "subjectId": "MATH", "marks": 40,
             "updatedAt": "2024-01-01"},
            {"studentId": "S1", "examId": EXAM, "subjectId": "MATH", "marks": 80,
             "updatedAt": "2024-06-05T10:00:00.000Z"},
        ]
        report = build_student_report("S1", EXAM, results, subjects)
        maths = next(e for e in report["subject_results"] if e["subject_id"] == "MATH")
        assert maths["marks"] == 80.0


class TestApplicableSubjects:

    def test_core_plus_selected(self):
        catalog = [
            {"subject_id": "MATH", "name": "Mathematics", "code": "MATH", "type": "CORE"},
            {"subject_id": "BIO", "name": "Biology", "code": "BIO", "type": "OPTIONAL"},
            {"subject_id": "COMM", "name": "Commerce", "code": "COMM", "type": "OPTIONAL"},
        ]
        chosen = applicable_subjects({"selected_subjects": ["BIO"]}, catalog)
        assert [s["subject_id"] for s in chosen] == ["MATH", "BIO"]
        assert len(applicable_subjects({"selected_subjects": None}, catalog)) == 3


class TestStudentReport:

    def test_summary(self, students, results, subjects):
        report = build_student_report(
            "S2", EXAM, results, subjects,
            student=students[1], classmates=students,
        )
        summary = report["summary"]
        assert report["student"]["name"] == "Neema Juma"
        assert summary["average_marks"] == "40.00"
        assert summary["total_points"] == 30
        assert summary["best_seven_points"] == 25
        assert summary["division"] == "III"
        assert summary["rank"] == 3
        assert summary["total_students"] == 4
        assert report["warning"] is None

    def test_without_classmates_has_no_rank(self, results, subjects):
        report = build_student_report("S1", EXAM, results, subjects)
        assert report["summary"]["rank"] is None
        assert len(report["subject_results"]) == 8

    def test_no_results_warning(self, subjects):
        report = build_student_report("S9", EXAM, [], subjects)
        assert report["warning"] == NO_STUDENT_RESULTS_WARNING
        assert report["summary"]["division"] == "0"
        assert report["summary"]["average_marks"] == "0.00"


class TestClassReportExcel:

    def test_creates_workbook(self, class_report):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "class_report.xlsx")
            generate_class_report_excel(path, class_report, SCHOOL_NAME)
            assert os.path.exists(path)
            wb = load_workbook(path)
            assert wb.sheetnames == ["Class Results", "Subject Analysis", "Division Summary"]
            ws = wb["Class Results"]
            assert ws.max_row == 2 + len(class_report["students"])

    def test_empty_report_exports(self, subjects):
        report = build_class_report(CLASS, EXAM, [], [], subjects)
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "empty.xlsx")
            generate_class_report_excel(path, report, SCHOOL_NAME)
            assert os.path.getsize(path) > 0
