"""Tabular exports of the attendance snapshot."""

from io import BytesIO
from typing import List

import pandas as pd

from attendance_app.formatting import format_percent_fraction
from attendance_app.models import Snapshot

EXPORT_COLUMNS = [
    'Roll No',
    'Student Name',
    'Classes Held',
    'Present',
    'Absent',
    'Attendance %',
    'Status',
]


def students_frame(snapshot: Snapshot) -> pd.DataFrame:
    """
    One row per student, ordered by roll, plus a column per subject.

    Subject columns hold "present/held" for that subject, empty when the
    student does not appear in the subject's sheet.
    """
    subjects: List[str] = []
    for student in snapshot.ordered:
        for subject in student.subjects:
            if subject not in subjects:
                subjects.append(subject)

    records = []
    for student in snapshot.ordered:
        t = student.totals
        record = {
            'Roll No': student.roll,
            'Student Name': student.name,
            'Classes Held': t.classes_held,
            'Present': t.present,
            'Absent': t.absent,
            'Attendance %': format_percent_fraction(t.percent),
            'Status': t.status,
        }
        for subject in subjects:
            s = student.subjects.get(subject)
            record[subject] = f"{s.present}/{s.classes_held}" if s else ""
        records.append(record)

    return pd.DataFrame(records, columns=EXPORT_COLUMNS + subjects)


def to_csv_text(snapshot: Snapshot) -> str:
    return students_frame(snapshot).to_csv(index=False)


def to_xlsx_bytes(snapshot: Snapshot) -> bytes:
    """Render the students table as an Excel workbook."""
    output = BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        students_frame(snapshot).to_excel(writer, sheet_name='Attendance', index=False)
    return output.getvalue()
