"""Class Session Model - Time-boxed check-in windows opened by instructors"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from app.core.database import Base, utcnow


class ClassSession(Base):
    """A check-in window for one subject; never deleted"""
    __tablename__ = "class_sessions"

    id = Column(Integer, primary_key=True, index=True)

    # Externally shareable token (UUID4)
    session_id = Column(String(36), nullable=False, unique=True, index=True)

    # 6-digit human-typeable alternate key, unique among active sessions
    short_code = Column(String(6), nullable=False, index=True)

    owner_id = Column(String(64), nullable=False, index=True)
    subject = Column(String(200), nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)

    # False is terminal
    active = Column(Boolean, nullable=False, default=True)

    # Set once the owner closes the session and absentees are reconciled;
    # lazily expired sessions stay NULL until then
    closed_at = Column(DateTime, nullable=True)

    # Expected headcount, display only
    roster_size = Column(Integer, nullable=False, default=60)

    roster = relationship(
        "ClassSessionRoster",
        back_populates="session",
        cascade="all, delete-orphan",
        lazy="raise",
    )

    __table_args__ = (
        # A code may be reused once the earlier session is closed
        Index(
            "uq_class_sessions_active_code",
            "short_code",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
        Index("ix_class_sessions_owner_created", "owner_id", "created_at"),
    )

    def is_past_expiry(self, now) -> bool:
        return now > self.expires_at

    def __repr__(self):
        return f"<ClassSession(session_id={self.session_id}, code={self.short_code}, active={self.active})>"


class ClassSessionRoster(Base):
    """Participants invited to a specific session"""
    __tablename__ = "class_session_roster"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(
        String(36),
        ForeignKey("class_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participant_id = Column(String(64), nullable=False)

    session = relationship("ClassSession", back_populates="roster")

    __table_args__ = (
        UniqueConstraint("session_id", "participant_id", name="uq_session_roster_participant"),
    )

    def __repr__(self):
        return f"<ClassSessionRoster(session_id={self.session_id}, participant_id={self.participant_id})>"
