"""Instructor Analytics Schemas"""
from typing import List

from app.core.schemas import CamelModel
from app.students.schemas.attendance import DailyStats, SubjectStats


class InstructorOverall(CamelModel):
    total_sessions: int = 0
    avg_attendance: int = 0
    total_present: int = 0
    total_records: int = 0


class InstructorAnalyticsResponse(CamelModel):
    """Subject breakdown, daily trend and totals across an instructor's sessions"""
    subjects: List[SubjectStats] = []
    daily_trend: List[DailyStats] = []
    overall: InstructorOverall = InstructorOverall()
