from datetime import datetime

import pytest

from app.staff.services import stats
from app.students.models.attendance import AttendanceRecord, AttendanceStatus


def record(subject, day, status=AttendanceStatus.PRESENT, minute=0, id=None):
    created = datetime(2024, 3, day, 9, minute)
    return AttendanceRecord(
        id=id,
        session_id=f"{subject}-{day}",
        participant_id="S001",
        subject=subject,
        date=created.strftime("%Y-%m-%d"),
        time=created.strftime("%H:%M:%S"),
        status=status.value,
        created_at=created,
    )


@pytest.mark.parametrize(
    "present,total,expected",
    [(0, 0, 0), (0, 3, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 2, 50), (3, 3, 100)],
)
def test_percentage(present, total, expected):
    assert stats.percentage(present, total) == expected


def test_half_rounds_up():
    # 12.5% and 0.5%
    assert stats.percentage(1, 8) == 13
    assert stats.percentage(1, 200) == 1


def test_subject_breakdown():
    records = [
        record("Physics", 1),
        record("Physics", 2, AttendanceStatus.ABSENT),
        record("Physics", 3),
        record("Maths", 1, AttendanceStatus.ABSENT),
    ]

    by_name = {s.name: s for s in stats.subject_breakdown(records)}

    assert (by_name["Physics"].present, by_name["Physics"].total) == (2, 3)
    assert by_name["Physics"].percentage == 67
    assert by_name["Maths"].percentage == 0


def test_daily_trend_is_ascending_and_limited():
    records = [record("Physics", day) for day in (5, 1, 3, 2, 4)]

    trend = stats.daily_trend(records, days=3)

    assert [d.date for d in trend] == ["2024-03-03", "2024-03-04", "2024-03-05"]
    assert all(d.percentage == 100 for d in trend)


def test_recent_feed_is_newest_first():
    records = [record("Physics", day, id=day) for day in range(1, 15)]

    recent = stats.recent_feed(records)

    assert len(recent) == 10
    assert recent[0].date == "2024-03-14"
    assert recent[-1].date == "2024-03-05"


def test_participant_summary_of_nothing():
    summary = stats.participant_summary([])

    assert summary.subjects == []
    assert summary.overall.percentage == 0
    assert summary.recent == []


def test_instructor_summary():
    records = [
        record("Physics", 1),
        record("Physics", 1, AttendanceStatus.ABSENT),
        record("Maths", 2),
    ]

    summary = stats.instructor_summary(2, records)

    assert summary.overall.total_sessions == 2
    assert summary.overall.total_present == 2
    assert summary.overall.total_records == 3
    assert summary.overall.avg_attendance == 67
    assert [d.date for d in summary.daily_trend] == ["2024-03-01", "2024-03-02"]


def test_instructor_summary_without_sessions():
    summary = stats.instructor_summary(0, [])

    assert summary.overall.total_sessions == 0
    assert summary.subjects == []
    assert summary.daily_trend == []


def test_camel_case_output():
    dumped = stats.instructor_summary(1, [record("Physics", 1)]).model_dump(by_alias=True)

    assert "dailyTrend" in dumped
    assert dumped["overall"]["avgAttendance"] == 100
