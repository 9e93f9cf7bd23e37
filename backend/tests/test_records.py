"""
Tests for core/records.py
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.records import (
    id_key,
    known_ids,
    normalize_result,
    normalize_results,
    normalize_student,
    normalize_subject,
)


class TestNormalizeResult:

    def test_camel_case_aliases(self):
        record = normalize_result({
            "_id": "R1",
            "studentId": "S1",
            "examId": "E1",
            "subjectId": "M1",
            "marksObtained": 67,
            "grade": "B",
            "points": 2,
            "updatedAt": "2024-03-01T10:00:00Z",
        })
        assert record["id"] == "R1"
        assert record["student_id"] == "S1"
        assert record["exam_id"] == "E1"
        assert record["subject_id"] == "M1"
        assert record["marks_obtained"] == 67
        assert record["updated_at"] == "2024-03-01T10:00:00Z"

    def test_populated_references_unwrapped(self):
        record = normalize_result({
            "student": {"_id": "S9", "name": "Asha"},
            "subject": {"_id": "M2"},
            "exam": "E1",
            "marks": 40,
        })
        assert record["student_id"] == "S9"
        assert record["subject_id"] == "M2"
        assert record["marks_obtained"] == 40

    def test_missing_fields_become_none(self):
        record = normalize_result({"student_id": "S1"})
        assert record["marks_obtained"] is None
        assert record["exam_id"] is None
        assert "assessments" not in record

    def test_numeric_ids_become_strings(self):
        assert normalize_result({"student_id": 12})["student_id"] == "12"

    def test_assessments_kept(self):
        record = normalize_result({
            "student_id": "S1",
            "assessments": [{"weightage": 100, "marks_obtained": 50}],
        })
        assert record["assessments"] == [{"weightage": 100, "marks_obtained": 50}]

    def test_rejects_non_mapping(self):
        with pytest.raises(TypeError):
            normalize_result(["not", "a", "dict"])

    def test_list_must_be_list(self):
        with pytest.raises(TypeError):
            normalize_results({"student_id": "S1"})
        with pytest.raises(TypeError):
            normalize_results([{"student_id": "S1"}, 5])


class TestNormalizeStudent:

    def test_first_last_name(self):
        student = normalize_student({"_id": "S1", "firstName": "Neema", "lastName": "Juma"})
        assert student["student_id"] == "S1"
        assert student["name"] == "Neema Juma"
        assert student["gender"] == "N/A"
        assert student["selected_subjects"] is None

    def test_core_and_optional_selection(self):
        student = normalize_student({
            "id": "S2",
            "name": "Baraka",
            "coreSubjects": [{"_id": "M1"}, "M2"],
            "optionalSubjects": ["M7"],
        })
        assert student["selected_subjects"] == ["M1", "M2", "M7"]

    def test_explicit_selection_wins(self):
        student = normalize_student({
            "id": "S3",
            "selectedSubjects": ["M5"],
            "coreSubjects": ["M1"],
        })
        assert student["selected_subjects"] == ["M5"]


class TestNormalizeSubject:

    def test_defaults(self):
        subject = normalize_subject({"_id": "M1", "name": "Biology"})
        assert subject == {
            "subject_id": "M1",
            "name": "Biology",
            "code": "BIOL",
            "type": "OPTIONAL",
        }

    def test_core_type_case_insensitive(self):
        assert normalize_subject({"id": "M2", "name": "Maths", "type": "core"})["type"] == "CORE"


class TestIds:

    def test_id_key(self):
        assert id_key(" A1 ") == "A1"
        assert id_key({"_id": 5}) == "5"
        assert id_key("") is None
        assert id_key(None) is None

    def test_known_ids_from_records_and_plain_ids(self):
        assert known_ids([{"_id": "S1"}, "S2", {"id": 3}]) == {"S1", "S2", "3"}

    def test_known_ids_none_passes_through(self):
        assert known_ids(None) is None

    def test_known_ids_rejects_string(self):
        with pytest.raises(TypeError):
            known_ids("S1")
