"""Attendance Record Model - Append-only presence facts per session"""
import enum

from sqlalchemy import (
    Column,
    Integer,
    DateTime,
    ForeignKey,
    String,
    Float,
    Index,
    UniqueConstraint,
)

from app.core.database import Base, utcnow


class AttendanceStatus(str, enum.Enum):
    PRESENT = "Present"
    ABSENT = "Absent"


class AttendanceRecord(Base):
    """One row per (session, participant); never updated or deleted"""
    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)

    session_id = Column(
        String(36),
        ForeignKey("class_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participant_id = Column(String(64), nullable=False, index=True)

    subject = Column(String(200), nullable=False)

    # Local calendar fields kept as text for export and trend grouping
    date = Column(String(10), nullable=False)
    time = Column(String(8), nullable=False)

    # Zero for manual and automatic rows
    latitude = Column(Float, nullable=False, default=0.0)
    longitude = Column(Float, nullable=False, default=0.0)

    status = Column(String(10), nullable=False, default=AttendanceStatus.PRESENT.value)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("session_id", "participant_id", name="uq_attendance_session_participant"),
        Index("ix_attendance_participant_subject", "participant_id", "subject"),
    )

    def __repr__(self):
        return f"<AttendanceRecord(session_id={self.session_id}, participant_id={self.participant_id}, status={self.status})>"
