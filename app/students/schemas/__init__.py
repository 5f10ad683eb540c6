"""Student Schemas Package"""
from .attendance import (
    Location,
    MarkAttendanceRequest,
    MarkByCodeRequest,
    AttendanceRecordRead,
    AttendanceRecordNamed,
    CheckInCreatedResponse,
    AlreadyMarkedResponse,
    SubjectStats,
    DailyStats,
    OverallStats,
    RecentRecord,
    StudentStatsResponse,
)

__all__ = [
    "Location",
    "MarkAttendanceRequest",
    "MarkByCodeRequest",
    "AttendanceRecordRead",
    "AttendanceRecordNamed",
    "CheckInCreatedResponse",
    "AlreadyMarkedResponse",
    "SubjectStats",
    "DailyStats",
    "OverallStats",
    "RecentRecord",
    "StudentStatsResponse",
]
