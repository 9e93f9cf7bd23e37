"""
Report routes — O-Level class/student report payloads and Excel export.
"""

import os
import re
import uuid
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.report_builder import (
    build_class_report,
    build_student_report,
    generate_class_report_excel,
)

router = APIRouter()

REPORTS_DIR = Path(__file__).resolve().parent.parent / "uploads" / "reports"

META_KEYS = ("class_name", "exam_name", "academic_year")


def _safe_token(value: str, fallback: str = "item") -> str:
    """Create filesystem-safe token for filenames."""
    token = re.sub(r"[^A-Za-z0-9._-]+", "_", str(value)).strip("._-")
    return token or fallback


def _safe_unlink(path: str):
    """Best-effort file deletion after response is sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        pass


def _class_report_from_payload(payload: dict) -> dict:
    """
    Expects: { "class_id", "exam_id", "students": [...], "results": [...],
               "subjects": [...], optional "class_name" / "exam_name" / "academic_year" }
    """
    if not payload.get("exam_id"):
        raise HTTPException(400, "Provide 'exam_id'.")
    if payload.get("subjects") is None:
        raise HTTPException(400, "Provide the 'subjects' catalog.")

    meta = {k: payload[k] for k in META_KEYS if payload.get(k) is not None}
    try:
        return build_class_report(
            payload.get("class_id"),
            payload["exam_id"],
            payload.get("students") or [],
            payload.get("results") or [],
            payload["subjects"],
            **meta,
        )
    except (TypeError, ValueError) as e:
        raise HTTPException(400, str(e))


@router.post("/class")
async def class_report(payload: dict):
    """Ranked O-Level class report for one exam."""
    return _class_report_from_payload(payload)


@router.post("/student/{student_id}")
async def student_report(student_id: str, payload: dict):
    """
    O-Level student report.
    Expects: { "exam_id", "results": [...], "subjects": [...],
               optional "student": {...}, "classmates": [...] }
    """
    if not payload.get("exam_id"):
        raise HTTPException(400, "Provide 'exam_id'.")
    if payload.get("subjects") is None:
        raise HTTPException(400, "Provide the 'subjects' catalog.")

    meta = {k: payload[k] for k in META_KEYS if payload.get(k) is not None}
    try:
        return build_student_report(
            student_id,
            payload["exam_id"],
            payload.get("results") or [],
            payload["subjects"],
            student=payload.get("student"),
            classmates=payload.get("classmates"),
            **meta,
        )
    except (TypeError, ValueError) as e:
        raise HTTPException(400, str(e))


@router.post("/class-excel")
async def class_report_excel(payload: dict):
    """Generate the class report and download it as an Excel workbook."""
    report = _class_report_from_payload(payload)

    REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    report_id = str(uuid.uuid4())[:8]
    class_token = _safe_token(report.get("class_name") or report.get("class_id") or "class", "class")
    output_path = REPORTS_DIR / f"class_report_{class_token}_{report_id}.xlsx"

    generate_class_report_excel(
        output_path=str(output_path),
        report=report,
        school_name=payload.get("school_name") or os.getenv("SCHOOL_NAME", "My School"),
    )

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"{class_token}_class_report.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
