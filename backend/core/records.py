"""
records.py — Input normalization for results, students and subjects.

Result records arrive keyed in several ways (marks / marksObtained,
studentId / student_id, populated {"_id": ...} sub-documents). Everything is
mapped once here to a single snake_case shape so the grading, ranking,
statistics and consistency modules only ever see one canonical record.

Normalization never drops or repairs a record: missing fields become None.
"""

from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional


# ── Field Aliases ───────────────────────────────────────────────────

RESULT_FIELDS = {
    "id": ["id", "_id", "result_id", "resultid"],
    "student_id": ["student_id", "studentid", "student"],
    "exam_id": ["exam_id", "examid", "exam"],
    "subject_id": ["subject_id", "subjectid", "subject"],
    "class_id": ["class_id", "classid", "class"],
    "academic_year_id": ["academic_year_id", "academicyearid", "academic_year", "academicyear"],
    "marks_obtained": ["marks_obtained", "marksobtained", "marks", "mark", "score"],
    "grade": ["grade"],
    "points": ["points"],
    "comment": ["comment", "comments"],
    "updated_at": ["updated_at", "updatedat", "created_at", "createdat"],
}

STUDENT_FIELDS = {
    "student_id": ["student_id", "studentid", "id", "_id"],
    "name": ["name", "full_name", "fullname", "student_name"],
    "first_name": ["first_name", "firstname"],
    "last_name": ["last_name", "lastname"],
    "roll_number": ["roll_number", "rollnumber", "adm_no", "admission_no"],
    "gender": ["gender", "sex"],
    "selected_subjects": ["selected_subjects", "selectedsubjects", "subjects"],
    "core_subjects": ["core_subjects", "coresubjects"],
    "optional_subjects": ["optional_subjects", "optionalsubjects"],
}

SUBJECT_FIELDS = {
    "subject_id": ["subject_id", "subjectid", "id", "_id"],
    "name": ["name", "subject_name", "subject"],
    "code": ["code", "subject_code"],
    "type": ["type", "subject_type"],
}


# ── Helpers ─────────────────────────────────────────────────────────

def _find_value(raw: Mapping, aliases: List[str]) -> Any:
    """Return the first non-None value whose key matches an alias (case-insensitive)."""
    keys_lower = {str(k).lower().strip(): k for k in raw.keys()}
    for alias in aliases:
        key = keys_lower.get(alias)
        if key is not None and raw[key] is not None:
            return raw[key]
    return None


def _ref_id(value: Any) -> Any:
    """Unwrap a populated reference like {"_id": "..."} to its id."""
    if isinstance(value, Mapping):
        return _find_value(value, ["_id", "id"])
    return value


def _ensure_list(records: Any, what: str) -> List[Mapping]:
    if not isinstance(records, (list, tuple)):
        raise TypeError(f"{what} must be a list of records, got {type(records).__name__}")
    for record in records:
        if not isinstance(record, Mapping):
            raise TypeError(f"every entry in {what} must be a mapping")
    return list(records)


def id_key(value: Any) -> Optional[str]:
    """Comparable string form of an opaque identifier."""
    value = _ref_id(value)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _id_list(values: Any) -> List[str]:
    if not isinstance(values, (list, tuple)):
        return []
    return [k for k in (id_key(v) for v in values) if k is not None]


# ── Results ─────────────────────────────────────────────────────────

def normalize_result(raw: Mapping) -> Dict[str, Any]:
    """Map one raw result record to the canonical result shape."""
    if not isinstance(raw, Mapping):
        raise TypeError("result record must be a mapping")

    record = {field: _find_value(raw, aliases) for field, aliases in RESULT_FIELDS.items()}
    for field in ("id", "student_id", "exam_id", "subject_id", "class_id", "academic_year_id"):
        record[field] = id_key(record[field])

    assessments = _find_value(raw, ["assessments"])
    if isinstance(assessments, (list, tuple)) and assessments:
        record["assessments"] = [dict(a) for a in assessments if isinstance(a, Mapping)]
    return record


def normalize_results(raws: Any) -> List[Dict[str, Any]]:
    return [normalize_result(r) for r in _ensure_list(raws, "results")]


# ── Students ────────────────────────────────────────────────────────

def normalize_student(raw: Mapping) -> Dict[str, Any]:
    """
    Map a raw student record to {student_id, name, roll_number, gender,
    selected_subjects}. selected_subjects is None when no selection is known.
    """
    if not isinstance(raw, Mapping):
        raise TypeError("student record must be a mapping")

    values = {field: _find_value(raw, aliases) for field, aliases in STUDENT_FIELDS.items()}

    name = values["name"]
    if not name:
        name = f"{values['first_name'] or ''} {values['last_name'] or ''}".strip()

    selected = _id_list(values["selected_subjects"])
    if not selected:
        selected = _id_list(values["core_subjects"]) + _id_list(values["optional_subjects"])

    student_id = id_key(values["student_id"])
    return {
        "student_id": student_id,
        "name": str(name) if name else (student_id or ""),
        "roll_number": str(values["roll_number"]) if values["roll_number"] is not None else "",
        "gender": str(values["gender"]) if values["gender"] is not None else "N/A",
        "selected_subjects": selected or None,
    }


def normalize_students(raws: Any) -> List[Dict[str, Any]]:
    return [normalize_student(r) for r in _ensure_list(raws, "students")]


# ── Subjects ────────────────────────────────────────────────────────

def normalize_subject(raw: Mapping) -> Dict[str, Any]:
    """Map a raw subject to {subject_id, name, code, type}; type is CORE or OPTIONAL."""
    if not isinstance(raw, Mapping):
        raise TypeError("subject record must be a mapping")

    values = {field: _find_value(raw, aliases) for field, aliases in SUBJECT_FIELDS.items()}
    subject_id = id_key(values["subject_id"])
    name = str(values["name"]).strip() if values["name"] is not None else (subject_id or "")
    code = values["code"] or name[:4].upper()
    subject_type = "CORE" if str(values["type"] or "").strip().upper() == "CORE" else "OPTIONAL"
    return {
        "subject_id": subject_id,
        "name": name,
        "code": str(code),
        "type": subject_type,
    }


def normalize_subjects(raws: Any) -> List[Dict[str, Any]]:
    return [normalize_subject(r) for r in _ensure_list(raws, "subjects")]


def known_ids(entities: Optional[Iterable[Any]], aliases: Optional[List[str]] = None) -> Optional[set]:
    """
    Collect identifiers from a list of ids or entity records.

    None means "unknown" and is passed through so callers can skip the check.
    """
    if entities is None:
        return None
    if isinstance(entities, (str, bytes)) or not isinstance(entities, Iterable):
        raise TypeError("known entities must be a list of ids or records")

    aliases = aliases or ["id", "_id"]
    ids = set()
    for entity in entities:
        value = _find_value(entity, aliases) if isinstance(entity, Mapping) else entity
        key = id_key(value)
        if key is not None:
            ids.add(key)
    return ids
