"""Student CRUD Package"""
from .attendance import (
    AppendResult,
    append,
    bulk_append_absent,
    count_by_status,
    count_present,
    list_by_participant,
    list_by_session,
    list_by_sessions,
)

from .roster import (
    get_display_name,
    get_display_names,
    list_participant_ids,
)

__all__ = [
    # Attendance ledger
    "AppendResult",
    "append",
    "bulk_append_absent",
    "count_by_status",
    "count_present",
    "list_by_participant",
    "list_by_session",
    "list_by_sessions",
    # Roster
    "get_display_name",
    "get_display_names",
    "list_participant_ids",
]
