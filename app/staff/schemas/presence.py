"""Live dashboard events pushed over the session channel"""
from typing import Literal

from app.core.schemas import CamelModel


class PresenceUpdatedEvent(CamelModel):
    event: Literal["presenceUpdated"] = "presenceUpdated"
    session_id: str
    participant_id: str
    name: str
    present_count: int
    roster_size: int
    time: str


class SessionClosedEvent(CamelModel):
    event: Literal["sessionClosed"] = "sessionClosed"
    session_id: str
    present_count: int
    absent_count: int
