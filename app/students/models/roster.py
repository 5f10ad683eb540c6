"""Roster Entry Model - Written by the registration service, read-only here"""
from sqlalchemy import Column, Integer, String

from app.core.database import Base


class RosterEntry(Base):
    __tablename__ = "roster_entries"

    id = Column(Integer, primary_key=True, index=True)
    participant_id = Column(String(64), nullable=False, unique=True, index=True)
    display_name = Column(String(200), nullable=False)

    def __repr__(self):
        return f"<RosterEntry(participant_id={self.participant_id}, name={self.display_name})>"
