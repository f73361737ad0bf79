"""Unit tests for attendance aggregation."""

import pytest

from attendance_app.attendance import (
    build_snapshot,
    build_students_map,
    build_subject_records,
    classify_status,
    compute_today_counts,
    search_students,
    sorted_students,
    summarize,
)
from attendance_app.formatting import format_percent_fraction
from attendance_app.models import Sheet, Student, SubjectAttendance


def make_sheet(subject, lines):
    return Sheet(subject=subject, raw_text="\n".join(lines))


DBMS = make_sheet("DBMS", [
    "S.No,Student Name,Roll No,01-Jan,02-Jan,03-Jan",
    "1,Asha,R001,P,P,A",
    "2,Bilal,R002,a,p,P",
    "3,Chen,R003,,,",
])

DAA = make_sheet("DAA", [
    "S.No,Student Name,Roll No,01-Jan,02-Jan,03-Jan",
    "1,Asha,R001,P,P,A",
    "2,Bilal,R002,A,A,A",
])


def student_with(**subjects):
    student = Student(roll="R1", name="X")
    for subject, marks in subjects.items():
        student.subjects[subject] = SubjectAttendance(
            classes_held=len(marks),
            present=sum(marks),
            absent=len(marks) - sum(marks),
            present_by_date=list(marks),
        )
    return student


def test_classify_status():
    """Threshold is inclusive at 75%."""
    assert classify_status(0.75) == "Good"
    assert classify_status(0.9) == "Good"
    assert classify_status(0.7499) == "Needs Improvement"
    assert classify_status(0.0) == "Needs Improvement"


def test_build_subject_records():
    students = {}
    rows = [
        ["S.No", "Name", "Roll", "d1", "d2", "d3"],
        ["1", "Asha", "R001", "P", " p ", "A"],
    ]
    build_subject_records("DBMS", rows, students)

    record = students["R001"].subjects["DBMS"]
    assert record.classes_held == 3
    assert record.present == 2
    assert record.absent == 1
    assert record.present_by_date == [1, 1, 0]


def test_short_rows_count_missing_cells_as_absent():
    """Sessions come from the header even when a row is shorter."""
    students = {}
    rows = [
        ["S.No", "Name", "Roll", "d1", "d2", "d3", "d4"],
        ["1", "Asha", "R001", "P"],
    ]
    build_subject_records("DBMS", rows, students)

    record = students["R001"].subjects["DBMS"]
    assert record.classes_held == 4
    assert record.present_by_date == [1, 0, 0, 0]
    assert record.absent == 3


def test_only_p_counts_as_present():
    students = {}
    rows = [
        ["S.No", "Name", "Roll", "d1", "d2", "d3", "d4", "d5"],
        ["1", "Asha", "R001", "A", "-", "present", "", "P"],
    ]
    build_subject_records("DBMS", rows, students)
    assert students["R001"].subjects["DBMS"].present_by_date == [0, 0, 0, 0, 1]


def test_missing_roll_rows_are_skipped():
    """Rows without a roll number create no student and change nothing."""
    base = build_students_map([DBMS])
    with_blank = build_students_map([make_sheet("DBMS", [
        "S.No,Student Name,Roll No,01-Jan,02-Jan,03-Jan",
        "1,Asha,R001,P,P,A",
        "9,Ghost,  ,P,P,P",
        "",
        "2,Bilal,R002,a,p,P",
        "3,Chen,R003,,,",
    ])])

    assert set(with_blank) == {"R001", "R002", "R003"}
    for roll in base:
        assert with_blank[roll].totals == base[roll].totals


def test_header_only_and_empty_sheets():
    """Sheets with no date columns or no rows degrade gracefully."""
    students = build_students_map([
        make_sheet("Empty", [""]),
        make_sheet("NoDates", ["S.No,Student Name,Roll No", "1,Asha,R001"]),
    ])
    assert list(students) == ["R001"]
    totals = students["R001"].totals
    assert totals.classes_held == 0
    assert totals.percent == 0.0
    assert totals.status == "Needs Improvement"


def test_name_defaults_to_unknown_then_first_name_wins():
    students = build_students_map([
        make_sheet("A", ["h,Name,Roll,d1", "1,,R001,P"]),
    ])
    assert students["R001"].name == "Unknown"

    students = build_students_map([
        make_sheet("A", ["h,Name,Roll,d1", "1,,R001,P"]),
        make_sheet("B", ["h,Name,Roll,d1", "1,Asha,R001,P"]),
        make_sheet("C", ["h,Name,Roll,d1", "1,Asha K,R001,P"]),
        make_sheet("D", ["h,Name,Roll,d1", "1,,R001,P"]),
    ])
    assert students["R001"].name == "Asha"


def test_totals_across_subjects():
    students = build_students_map([DBMS, DAA])

    asha = students["R001"]
    assert list(asha.subjects) == ["DBMS", "DAA"]
    assert asha.totals.classes_held == 6
    assert asha.totals.present == 4
    assert asha.totals.absent == 2

    chen = students["R003"]
    assert list(chen.subjects) == ["DBMS"]
    assert chen.totals.classes_held == 3
    assert chen.totals.present == 0


def test_totals_invariant():
    students = build_students_map([DBMS, DAA])
    for student in students.values():
        t = student.totals
        assert t.present + t.absent == t.classes_held
        for record in student.subjects.values():
            assert record.present + record.absent == record.classes_held
            assert len(record.present_by_date) == record.classes_held


def test_end_to_end_percentage():
    """Present in 4 of 6 sessions: 66.67%, needs improvement."""
    student = build_students_map([DBMS, DAA])["R001"]
    assert student.totals.percent == pytest.approx(0.6667, abs=1e-4)
    assert format_percent_fraction(student.totals.percent) == "66.67%"
    assert student.totals.status == "Needs Improvement"


def test_exact_threshold_is_good():
    students = build_students_map([
        make_sheet("A", ["h,Name,Roll,d1,d2,d3,d4", "1,Asha,R001,P,P,P,A"]),
    ])
    assert students["R001"].totals.percent == 0.75
    assert students["R001"].totals.status == "Good"


def test_duplicate_rows_do_not_double_count():
    """A repeated roll in one sheet replaces the earlier record."""
    students = build_students_map([
        make_sheet("A", ["h,Name,Roll,d1,d2", "1,Asha,R001,P,P", "2,Asha,R001,A,P"]),
    ])
    asha = students["R001"]
    assert asha.subjects["A"].present_by_date == [0, 1]
    assert asha.totals.classes_held == 2
    assert asha.totals.present == 1


def test_rebuild_is_idempotent():
    first = build_students_map([DBMS, DAA])
    second = build_students_map([DBMS, DAA])
    assert {r: s.totals for r, s in first.items()} == {r: s.totals for r, s in second.items()}


def test_today_counts_examples():
    """Present in any subject's last session counts as present today."""
    students = {
        "a": student_with(A=[0, 1], B=[1, 0]),
        "b": student_with(A=[1, 0], B=[0]),
        "c": student_with(A=[], B=[]),
        "d": Student(roll="d"),
    }
    counts = compute_today_counts(students)
    assert counts.present == 1
    assert counts.absent == 1
    assert counts.unknown == 2


def test_today_counts_from_sheets():
    counts = compute_today_counts(build_students_map([DBMS, DAA]))
    # R001 absent in both last sessions, R002 present in DBMS, R003 left blank
    assert counts.present == 1
    assert counts.absent == 2
    assert counts.unknown == 0


def test_summarize():
    students = build_students_map([DBMS, DAA])
    summary = summarize(students)
    assert summary.total_students == 3
    assert summary.total_classes_held == 15
    # R001 4, R002 2, R003 0
    assert summary.average_attendance == pytest.approx(6 / 15)
    assert summary.today.present == 1


def test_summarize_empty():
    summary = summarize({})
    assert summary.total_students == 0
    assert summary.average_attendance == 0.0


def test_sorted_and_search():
    students = build_students_map([
        make_sheet("A", ["h,Name,Roll,d1", "1,Zed,R10,P", "2,Amy,R02,P", "3,Bo,R1,P"]),
    ])
    ordered = sorted_students(students)
    assert [s.roll for s in ordered] == ["R02", "R1", "R10"]

    assert [s.roll for s in search_students(ordered, "amy")] == ["R02"]
    assert [s.roll for s in search_students(ordered, "r1")] == ["R1", "R10"]
    assert len(search_students(ordered, "  ")) == 3
    assert len(search_students(ordered, None)) == 3


def test_build_snapshot():
    snapshot = build_snapshot([DBMS, DAA])
    assert [s.roll for s in snapshot.ordered] == ["R001", "R002", "R003"]
    assert snapshot.summary.total_students == 3
    assert snapshot.students["R002"].totals.present == 2


def test_real_name_unknown_is_not_replaced():
    """A student actually named "Unknown" keeps that name."""
    students = build_students_map([
        make_sheet("A", ["h,Name,Roll,d1", "1,Unknown,R1,P"]),
        make_sheet("B", ["h,Name,Roll,d1", "1,Asha,R1,P"]),
    ])
    assert students["R1"].name == "Unknown"
