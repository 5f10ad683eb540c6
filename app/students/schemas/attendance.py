"""Student Attendance Schemas"""
from pydantic import Field, field_validator
from typing import Optional, List
from datetime import datetime

from app.core.geo import Coordinates
from app.core.schemas import CamelModel
from app.students.models.attendance import AttendanceStatus


class Location(CamelModel):
    """Reported device position in degrees"""
    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lng: float = Field(..., ge=-180, le=180, description="Longitude")

    def to_coordinates(self) -> Coordinates:
        return Coordinates(self.lat, self.lng)


class MarkAttendanceRequest(CamelModel):
    """Check-in from a scanned QR advertisement"""
    session_id: str = Field(..., min_length=1, description="Session ID from the QR code")
    location: Location

    model_config = {
        "json_schema_extra": {
            "example": {
                "sessionId": "8d0f3c8e-1f5a-4f5e-9a57-1c1f6b9e2a10",
                "location": {"lat": 11.4958, "lng": 77.2767},
            }
        }
    }


class MarkByCodeRequest(CamelModel):
    """Check-in by typing the 6-digit class code"""
    class_code: str = Field(..., description="6-digit class code")
    location: Location

    @field_validator("class_code")
    @classmethod
    def validate_class_code(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 6 or not v.isdigit():
            raise ValueError("Class code must be 6 digits")
        return v


class AttendanceRecordRead(CamelModel):
    """Stored attendance fact"""
    session_id: str
    participant_id: str
    subject: str
    date: str
    time: str
    latitude: float
    longitude: float
    status: AttendanceStatus
    created_at: datetime


class AttendanceRecordNamed(AttendanceRecordRead):
    """Record with the participant's display name resolved"""
    participant_name: str


class CheckInCreatedResponse(CamelModel):
    message: str
    attendance: AttendanceRecordRead


class AlreadyMarkedResponse(CamelModel):
    """Success-shaped answer to a repeated check-in"""
    already_marked: bool = True
    message: str


class SubjectStats(CamelModel):
    name: str
    present: int
    total: int
    percentage: int


class DailyStats(CamelModel):
    date: str
    present: int
    total: int
    percentage: int


class OverallStats(CamelModel):
    present: int = 0
    total: int = 0
    percentage: int = 0


class RecentRecord(CamelModel):
    subject: str
    date: str
    status: AttendanceStatus


class StudentStatsResponse(CamelModel):
    """Attendance dashboard for one participant"""
    subjects: List[SubjectStats] = []
    overall: OverallStats = OverallStats()
    recent: List[RecentRecord] = []
