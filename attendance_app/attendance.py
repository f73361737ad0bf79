"""Attendance aggregation: per-subject records, student totals and today's counts."""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from attendance_app.csv_parser import parse_csv
from attendance_app.formatting import GOOD_STATUS, NEEDS_IMPROVEMENT_STATUS
from attendance_app.models import (
    Sheet,
    Snapshot,
    Student,
    SubjectAttendance,
    Summary,
    TodayCounts,
    Totals,
)

logger = logging.getLogger(__name__)

# Fixed column layout of every subject sheet
NAME_COLUMN = 1
ROLL_COLUMN = 2
FIRST_DATE_COLUMN = 3

GOOD_ATTENDANCE_THRESHOLD = 0.75
UNKNOWN_NAME = "Unknown"


def _cell(row: List[str], index: int) -> str:
    if index < len(row):
        return row[index].strip()
    return ""


def is_present_mark(value: str) -> bool:
    """Only a "P" (any case, surrounding whitespace ignored) counts as present."""
    return value.strip().lower() == "p"


def classify_status(percent: float) -> str:
    """
    Classify overall attendance.

    Args:
        percent: Attendance fraction (0-1)

    Returns:
        "Good" when percent >= 0.75, otherwise "Needs Improvement"
    """
    if percent >= GOOD_ATTENDANCE_THRESHOLD:
        return GOOD_STATUS
    return NEEDS_IMPROVEMENT_STATUS


def subject_percent(record: SubjectAttendance) -> float:
    if record.classes_held > 0:
        return record.present / record.classes_held
    return 0.0


def build_subject_records(subject: str, rows: List[List[str]], students: Dict[str, Student]) -> None:
    """
    Fold one subject sheet into the running students map.

    Column 1 holds the name, column 2 the roll number and every column from 3
    onward one class session. The number of sessions comes from the header and
    applies to every row, so short rows count their missing cells as absent.
    Rows without a roll number are skipped. A later row for the same roll
    replaces that student's record for this subject.

    Args:
        subject: Subject name the sheet belongs to
        rows: Parsed sheet, row 0 being the header
        students: Map of roll -> Student, updated in place
    """
    if not rows:
        return

    header = rows[0]
    classes_held = max(0, len(header) - FIRST_DATE_COLUMN)

    for line_no, row in enumerate(rows[1:], start=1):
        roll = _cell(row, ROLL_COLUMN)
        if not roll:
            if row:
                logger.debug("Skipping row %d of %s: no roll number", line_no, subject)
            continue
        name = _cell(row, NAME_COLUMN)

        student = students.get(roll)
        if student is None:
            student = Student(roll=roll, name=name or UNKNOWN_NAME)
            student._name_defaulted = not name
            students[roll] = student
        elif name and student._name_defaulted:
            student.name = name
            student._name_defaulted = False

        present_by_date = [
            1 if is_present_mark(_cell(row, col)) else 0
            for col in range(FIRST_DATE_COLUMN, len(header))
        ]
        present = sum(present_by_date)

        student.subjects[subject] = SubjectAttendance(
            classes_held=classes_held,
            present=present,
            absent=classes_held - present,
            present_by_date=present_by_date,
        )


def finalize_totals(student: Student) -> Totals:
    """
    Recompute a student's totals from their subject records.

    Totals are always a fresh sum over the final subjects mapping, so a
    duplicated row in a sheet cannot be counted twice.
    """
    classes_held = sum(s.classes_held for s in student.subjects.values())
    present = sum(s.present for s in student.subjects.values())
    absent = sum(s.absent for s in student.subjects.values())
    percent = present / classes_held if classes_held > 0 else 0.0

    student.totals = Totals(
        classes_held=classes_held,
        present=present,
        absent=absent,
        percent=percent,
        status=classify_status(percent),
    )
    return student.totals


def aggregate_students(students: Dict[str, Student]) -> Dict[str, Student]:
    for student in students.values():
        finalize_totals(student)
    return students


def build_students_map(sheets: Iterable[Sheet]) -> Dict[str, Student]:
    """
    Parse every sheet and merge them into one map keyed by roll number.

    Sheets are processed in the order given.
    """
    students: Dict[str, Student] = {}
    for sheet in sheets:
        rows = parse_csv(sheet.raw_text)
        build_subject_records(sheet.subject, rows, students)
    return aggregate_students(students)


def compute_today_counts(students: Dict[str, Student]) -> TodayCounts:
    """
    Count who attended the most recent session.

    The last session column of every subject is taken to be "today". A student
    is present when marked present in any subject's last session, absent when
    at least one subject has a session but none marks them present, and
    unknown when no subject has any session at all.
    """
    counts = TodayCounts()
    for student in students.values():
        has_session = False
        present_today = False
        for record in student.subjects.values():
            if not record.present_by_date:
                continue
            has_session = True
            if record.present_by_date[-1] == 1:
                present_today = True
                break

        if not has_session:
            counts.unknown += 1
        elif present_today:
            counts.present += 1
        else:
            counts.absent += 1
    return counts


def summarize(students: Dict[str, Student]) -> Summary:
    total_classes_held = sum(s.totals.classes_held for s in students.values())
    total_present = sum(s.totals.present for s in students.values())
    average = total_present / total_classes_held if total_classes_held > 0 else 0.0

    return Summary(
        total_students=len(students),
        total_classes_held=total_classes_held,
        average_attendance=average,
        today=compute_today_counts(students),
    )


def sorted_students(students: Dict[str, Student]) -> List[Student]:
    """Students ordered by roll number (plain string comparison)."""
    return sorted(students.values(), key=lambda s: s.roll)


def search_students(students: Iterable[Student], query: Optional[str]) -> List[Student]:
    """
    Filter students by a case-insensitive substring of name or roll.

    A blank query matches everyone.
    """
    students = list(students)
    q = (query or "").strip().lower()
    if not q:
        return students
    return [s for s in students if q in s.name.lower() or q in s.roll.lower()]


def build_snapshot(sheets: Iterable[Sheet], refreshed_at: Optional[datetime] = None) -> Snapshot:
    """Run parsing and aggregation for one refresh cycle."""
    sheets = list(sheets)
    students = build_students_map(sheets)
    summary = summarize(students)

    logger.info(
        "Built snapshot: %d students from %d subjects (%d classes held)",
        summary.total_students, len(sheets), summary.total_classes_held,
    )
    return Snapshot(
        refreshed_at=refreshed_at or datetime.now(),
        students=students,
        ordered=sorted_students(students),
        summary=summary,
    )
