"""Data models for the Attendance Dashboard application."""

from datetime import datetime
from typing import Optional, Dict, List
from pydantic import BaseModel, Field, PrivateAttr


class Sheet(BaseModel):
    """One subject's raw attendance export, as fetched this cycle."""
    subject: str
    raw_text: str


class SubjectAttendance(BaseModel):
    """Attendance of one student in one subject."""
    classes_held: int = 0
    present: int = 0
    absent: int = 0
    present_by_date: List[int] = Field(default_factory=list)


class Totals(BaseModel):
    """Attendance summed across every subject of a student."""
    classes_held: int = 0
    present: int = 0
    absent: int = 0
    percent: float = 0.0
    status: str = "Needs Improvement"


class Student(BaseModel):
    """A student merged across all subject sheets, keyed by roll number."""
    roll: str
    name: str = "Unknown"
    subjects: Dict[str, SubjectAttendance] = Field(default_factory=dict)
    totals: Totals = Field(default_factory=Totals)
    # Set while the name is a placeholder for a roll first seen without one
    _name_defaulted: bool = PrivateAttr(default=False)


class TodayCounts(BaseModel):
    present: int = 0
    absent: int = 0
    unknown: int = 0


class Summary(BaseModel):
    """Aggregate statistics for one refresh cycle."""
    total_students: int
    total_classes_held: int
    average_attendance: float
    today: TodayCounts


class Snapshot(BaseModel):
    """Complete, self-contained result of one successful refresh cycle."""
    refreshed_at: datetime
    students: Dict[str, Student]
    ordered: List[Student]
    summary: Summary


class RefreshState(BaseModel):
    """What the dashboard currently shows: a snapshot or a cycle error."""
    generation: int = 0
    updated_at: Optional[datetime] = None
    snapshot: Optional[Snapshot] = None
    error: Optional[str] = None


class StudentRow(BaseModel):
    """One row of the students table."""
    roll: str
    name: str
    present: int
    absent: int
    classes_held: int
    percent: float
    percent_display: str
    status: str
    status_color: str


class SummaryResponse(BaseModel):
    """Response from the summary endpoint."""
    total_students: int
    total_classes_held: int
    average_attendance: float
    average_attendance_display: str
    today: TodayCounts
    last_updated: datetime


class StudentsResponse(BaseModel):
    """Response from the students listing endpoint."""
    count: int
    results: List[StudentRow]
    last_updated: datetime


class SubjectBreakdown(BaseModel):
    """Per-subject line of the student profile."""
    subject: str
    classes_held: int
    present: int
    absent: int
    percent: float
    percent_display: str


class StudentDetail(BaseModel):
    """Student profile with per-subject breakdown."""
    roll: str
    name: str
    totals: Totals
    percent_display: str
    status_label: str
    status_color: str
    subjects: List[SubjectBreakdown]


class RefreshResponse(BaseModel):
    """Response from the manual refresh endpoint."""
    success: bool
    message: str
    generation: int
    last_updated: Optional[datetime] = None
