"""Class Session Schemas"""
from pydantic import Field, field_validator
from typing import Optional, List
from datetime import datetime

from app.core.config import MAX_SESSION_MINUTES
from app.core.schemas import CamelModel
from app.students.schemas.attendance import AttendanceRecordNamed, AttendanceRecordRead


class SessionCreate(CamelModel):
    """Request to open a session"""
    subject: str = Field(..., min_length=1, max_length=200)
    duration_minutes: int = Field(..., gt=0, le=MAX_SESSION_MINUTES)
    roster_size: Optional[int] = Field(None, ge=0, description="Expected headcount")
    participant_ids: Optional[List[str]] = Field(
        None, description="Invite only these participants; absentees are computed from this list"
    )

    @field_validator("subject")
    @classmethod
    def strip_subject(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Subject cannot be empty")
        return v


class SessionRead(CamelModel):
    session_id: str
    owner_id: str
    subject: str
    class_code: str = Field(validation_alias="short_code", serialization_alias="classCode")
    roster_size: int
    created_at: datetime
    expires_at: datetime
    active: bool
    closed_at: Optional[datetime] = None


class SessionWithQr(SessionRead):
    qr_code: str


class SessionCreatedResponse(CamelModel):
    message: str
    session: SessionWithQr


class SessionStats(CamelModel):
    present: int
    absent: int


class SessionEndResponse(CamelModel):
    message: str
    session: SessionRead
    stats: SessionStats


class PastSessionRead(SessionRead):
    present_count: int
    absent_count: int
    attendance: List[AttendanceRecordNamed]


class ManualMarkRequest(CamelModel):
    """Instructor adds a participant without location"""
    participant_id: str = Field(..., min_length=1)
    name: Optional[str] = Field(None, max_length=200)


class ManualMarkResponse(CamelModel):
    message: str
    attendance: AttendanceRecordRead
