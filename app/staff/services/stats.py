"""
Read-side attendance folds.

Every function here is a pure fold over attendance records: no database
access, no failure modes. A group with no records reports 0%.
"""
import math
from collections import OrderedDict
from typing import Dict, Iterable, List, Sequence

from app.staff.schemas.analytics import InstructorAnalyticsResponse, InstructorOverall
from app.students.models.attendance import AttendanceRecord, AttendanceStatus
from app.students.schemas.attendance import (
    DailyStats,
    OverallStats,
    RecentRecord,
    StudentStatsResponse,
    SubjectStats,
)


def percentage(present: int, total: int) -> int:
    """present/total as a whole percent, halves rounded up; 0 when total is 0"""
    if total <= 0:
        return 0
    return int(math.floor(present * 100 / total + 0.5))


def _tally(records: Iterable[AttendanceRecord], key) -> "OrderedDict[str, Dict[str, int]]":
    groups: "OrderedDict[str, Dict[str, int]]" = OrderedDict()
    for record in records:
        bucket = groups.setdefault(key(record), {"present": 0, "total": 0})
        bucket["total"] += 1
        if record.status == AttendanceStatus.PRESENT:
            bucket["present"] += 1
    return groups


def subject_breakdown(records: Iterable[AttendanceRecord]) -> List[SubjectStats]:
    groups = _tally(records, lambda r: r.subject)
    return [
        SubjectStats(
            name=name,
            present=data["present"],
            total=data["total"],
            percentage=percentage(data["present"], data["total"]),
        )
        for name, data in groups.items()
    ]


def daily_trend(records: Iterable[AttendanceRecord], days: int = 30) -> List[DailyStats]:
    """Per-date percentages, oldest first, limited to the last `days` dates"""
    groups = _tally(records, lambda r: r.date)
    trend = [
        DailyStats(
            date=day,
            present=data["present"],
            total=data["total"],
            percentage=percentage(data["present"], data["total"]),
        )
        for day, data in sorted(groups.items())
    ]
    return trend[-days:] if days > 0 else []


def overall(records: Iterable[AttendanceRecord]) -> OverallStats:
    total = 0
    present = 0
    for record in records:
        total += 1
        if record.status == AttendanceStatus.PRESENT:
            present += 1
    return OverallStats(present=present, total=total, percentage=percentage(present, total))


def recent_feed(records: Iterable[AttendanceRecord], limit: int = 10) -> List[RecentRecord]:
    newest_first = sorted(
        records, key=lambda r: (r.created_at, r.id or 0), reverse=True
    )
    return [
        RecentRecord(subject=r.subject, date=r.date, status=r.status)
        for r in newest_first[:limit]
    ]


def participant_summary(records: Sequence[AttendanceRecord]) -> StudentStatsResponse:
    return StudentStatsResponse(
        subjects=subject_breakdown(records),
        overall=overall(records),
        recent=recent_feed(records),
    )


def instructor_summary(
    session_count: int, records: Sequence[AttendanceRecord], days: int = 30
) -> InstructorAnalyticsResponse:
    if session_count == 0:
        return InstructorAnalyticsResponse()

    totals = overall(records)
    return InstructorAnalyticsResponse(
        subjects=subject_breakdown(records),
        daily_trend=daily_trend(records, days),
        overall=InstructorOverall(
            total_sessions=session_count,
            avg_attendance=totals.percentage,
            total_present=totals.present,
            total_records=totals.total,
        ),
    )
