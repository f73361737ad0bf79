"""FastAPI main application for the Attendance Dashboard."""

import os
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

from attendance_app.models import (
    RefreshResponse,
    Snapshot,
    Student,
    StudentDetail,
    StudentRow,
    StudentsResponse,
    SubjectBreakdown,
    SummaryResponse,
)
from attendance_app.attendance import search_students, subject_percent
from attendance_app.exports import to_csv_text, to_xlsx_bytes
from attendance_app.fetcher import fetch_all_sheets, parse_sheet_sources
from attendance_app.formatting import format_percent_fraction, get_status_color, get_status_label
from attendance_app.refresher import AttendanceRefresher

# Load environment variables
load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Poll the sheets for as long as the application runs."""
    if AUTO_REFRESH:
        logger.info(
            "Polling %d sheets every %.0f seconds",
            len(refresher.sources), refresher.interval_seconds,
        )
        refresher.start()
    try:
        yield
    finally:
        await refresher.stop()


app = FastAPI(title="Attendance Dashboard", version="1.0.0", lifespan=lifespan)

# CORS configuration
allow_origins = os.getenv('ALLOW_ORIGINS', '*').split(',')
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Override default exception handlers to return JSON (register specific handlers first)
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and return JSON."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON."""
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()}
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON."""
    error_detail = str(exc)
    if os.getenv('DEBUG', 'False').lower() == 'true':
        error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"

    logger.error("Unhandled error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {error_detail}",
            "type": type(exc).__name__
        }
    )

# Configuration
DEFAULT_SHEETS = ';'.join([
    "DBMS=https://docs.google.com/spreadsheets/d/1mpNm7B3lH0cwtYSuWq8hc_APwUvMtDsXUFa4Wxs79Gw/export?format=csv",
    "Soft Computing=https://docs.google.com/spreadsheets/d/1FpO3Unwv1r3qHUf0O6ej9VbFmOnQzxWBY2jkxFvqxMg/export?format=csv",
    "DAA=https://docs.google.com/spreadsheets/d/1ZCZPdJNCS_OjCB9Th8UkoKHK5lHnqY7zdwbZsWWli_Y/export?format=csv",
    "OOSD With C++=https://docs.google.com/spreadsheets/d/1_Ewg-7Bu1tX2YcSloaJfdsOxXoYf9_ltxhGR9o2jx3U/export?format=csv",
])

SHEET_SOURCES = parse_sheet_sources(os.getenv('ATTENDANCE_SHEETS', DEFAULT_SHEETS))
REFRESH_SECONDS = float(os.getenv('REFRESH_SECONDS', '30'))
FETCH_TIMEOUT_SECONDS = float(os.getenv('FETCH_TIMEOUT_SECONDS', '10'))
AUTO_REFRESH = os.getenv('AUTO_REFRESH', 'True').lower() == 'true'


async def fetch_configured_sheets(sources):
    return await fetch_all_sheets(sources, timeout=FETCH_TIMEOUT_SECONDS)


refresher = AttendanceRefresher(
    SHEET_SOURCES,
    interval_seconds=REFRESH_SECONDS,
    fetch=fetch_configured_sheets,
)


def current_snapshot() -> Snapshot:
    """Snapshot of the last cycle, or 503 when it failed or has not run yet."""
    state = refresher.state
    if state.error is not None:
        raise HTTPException(status_code=503, detail=f"Error loading data: {state.error}")
    if state.snapshot is None:
        raise HTTPException(status_code=503, detail="Attendance data not loaded yet")
    return state.snapshot


def to_row(student: Student) -> StudentRow:
    t = student.totals
    return StudentRow(
        roll=student.roll,
        name=student.name,
        present=t.present,
        absent=t.absent,
        classes_held=t.classes_held,
        percent=t.percent,
        percent_display=format_percent_fraction(t.percent),
        status=t.status,
        status_color=get_status_color(t.status),
    )


def student_detail(student: Student) -> StudentDetail:
    """Build the profile view of a student."""
    subjects = []
    for subject, record in student.subjects.items():
        percent = subject_percent(record)
        subjects.append(SubjectBreakdown(
            subject=subject,
            classes_held=record.classes_held,
            present=record.present,
            absent=record.absent,
            percent=percent,
            percent_display=format_percent_fraction(percent),
        ))

    return StudentDetail(
        roll=student.roll,
        name=student.name,
        totals=student.totals,
        percent_display=format_percent_fraction(student.totals.percent),
        status_label=get_status_label(student.totals.status),
        status_color=get_status_color(student.totals.status),
        subjects=subjects,
    )


@app.get("/", response_class=HTMLResponse)
async def root():
    """Serve the landing page."""
    return HTMLResponse(
        content="<h1>Attendance Dashboard</h1>"
                "<p>See <a href='/summary'>/summary</a> and <a href='/students'>/students</a>.</p>"
    )


@app.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    state = refresher.state
    return JSONResponse(content={
        "status": "ok",
        "message": "Server is running",
        "polling": refresher.running,
        "last_cycle_ok": state.generation > 0 and state.error is None,
    })


@app.get("/summary", response_model=SummaryResponse)
async def get_summary():
    """Summary cards: students, classes held, average and today's counts."""
    snapshot = current_snapshot()
    summary = snapshot.summary
    return SummaryResponse(
        total_students=summary.total_students,
        total_classes_held=summary.total_classes_held,
        average_attendance=summary.average_attendance,
        average_attendance_display=format_percent_fraction(summary.average_attendance),
        today=summary.today,
        last_updated=snapshot.refreshed_at,
    )


@app.get("/students", response_model=StudentsResponse)
async def list_students(q: Optional[str] = None):
    """Students table ordered by roll, optionally filtered by name or roll."""
    snapshot = current_snapshot()
    rows = [to_row(s) for s in search_students(snapshot.ordered, q)]
    return StudentsResponse(count=len(rows), results=rows, last_updated=snapshot.refreshed_at)


@app.get("/students/{roll}", response_model=StudentDetail)
async def get_student(roll: str):
    """Profile of a single student."""
    snapshot = current_snapshot()
    student = snapshot.students.get(roll)
    if student is None:
        raise HTTPException(status_code=404, detail=f"Student with roll '{roll}' not found")
    return student_detail(student)


@app.post("/refresh", response_model=RefreshResponse)
async def refresh_now():
    """Run a refresh cycle immediately."""
    state = await refresher.run_cycle()
    if state.error is not None:
        return RefreshResponse(
            success=False,
            message=f"Error loading data: {state.error}",
            generation=state.generation,
            last_updated=state.updated_at,
        )
    return RefreshResponse(
        success=True,
        message=f"Loaded {state.snapshot.summary.total_students} students",
        generation=state.generation,
        last_updated=state.updated_at,
    )


@app.get("/download.csv")
async def download_csv():
    """Download the students table as CSV."""
    snapshot = current_snapshot()
    stamp = snapshot.refreshed_at.strftime('%Y-%m-%d')
    return Response(
        content=to_csv_text(snapshot),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=attendance_{stamp}.csv"}
    )


@app.get("/download.xlsx")
async def download_xlsx():
    """Download the students table as an Excel workbook."""
    snapshot = current_snapshot()
    stamp = snapshot.refreshed_at.strftime('%Y-%m-%d')
    return Response(
        content=to_xlsx_bytes(snapshot),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename=attendance_{stamp}.xlsx"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
