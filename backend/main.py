"""
O-Level Results Engine
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.olevel_grading import get_all_grade_thresholds, get_division_bands
from routes.grading import router as grading_router
from routes.reports import router as reports_router
from routes.consistency import router as consistency_router

# Load environment
load_dotenv()

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title="O-Level Results API",
    description=(
        "O-Level grading, best-seven divisions, class rankings, subject "
        "analysis and result consistency checks."
    ),
    version="1.0.0",
)

# CORS: allow the configured frontend origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(grading_router, prefix="/api/grading", tags=["Grading"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])
app.include_router(consistency_router, prefix="/api/consistency", tags=["Consistency"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "school_name": SCHOOL_NAME,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "school_name": SCHOOL_NAME,
        "education_level": "O_LEVEL",
        "grade_scale": get_all_grade_thresholds(),
        "division_bands": get_division_bands(),
    }
