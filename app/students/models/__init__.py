from app.core.database import Base
from .attendance import AttendanceRecord, AttendanceStatus
from .roster import RosterEntry

__all__ = [
    "Base",
    "AttendanceRecord",
    "AttendanceStatus",
    "RosterEntry",
]
