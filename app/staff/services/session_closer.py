"""
Session close and absentee reconciliation.

Closing is the only place Absent rows are created. Absentees are everyone on
the roster (the session's attached roster when it has one) without a Present
row. A check-in that lands between the present snapshot and the bulk insert
keeps its Present row: the ledger skips the conflicting Absent row.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import utcnow
from app.core.logging_utils import log_business_event
from app.core.realtime import PresencePublisher
from app.staff.crud import sessions as session_store
from app.staff.models.sessions import ClassSession
from app.staff.schemas.presence import SessionClosedEvent
from app.students.crud import attendance as ledger
from app.students.crud import roster
from app.students.models.attendance import AttendanceStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloseResult:
    session: ClassSession
    present_count: int
    absent_count: int
    already_closed: bool = False


class SessionCloser:
    """Ends a session on behalf of its owner"""

    def __init__(
        self,
        session: AsyncSession,
        publisher: PresencePublisher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.publisher = publisher
        self.clock = clock

    async def close(self, session_id: str, owner_id: str) -> CloseResult:
        class_session = await session_store.get_owned_session(self.session, session_id, owner_id)

        # Already reconciled: report, don't sweep again
        if class_session.closed_at is not None:
            present, absent = await ledger.count_by_status(self.session, session_id)
            return CloseResult(class_session, present, absent, already_closed=True)

        now = self.clock()
        class_session = await session_store.close_session(
            self.session, session_id, owner_id, now
        )

        records = await ledger.list_by_session(self.session, session_id)
        present_set = {
            r.participant_id for r in records if r.status == AttendanceStatus.PRESENT
        }
        absent_set = set(await self._expected_participants(session_id)) - present_set

        inserted = await ledger.bulk_append_absent(
            self.session, session_id, absent_set, class_session.subject, now
        )

        present, absent = await ledger.count_by_status(self.session, session_id)

        log_business_event(
            "session_closed",
            "session",
            session_id,
            {
                "owner_id": owner_id,
                "present": present,
                "absent": absent,
                "absent_inserted": inserted,
            },
        )

        try:
            self.publisher.publish(
                session_id,
                SessionClosedEvent(
                    session_id=session_id, present_count=present, absent_count=absent
                ),
            )
        except Exception as e:
            logger.warning(
                f"Session close broadcast failed: {str(e)}",
                extra={"session_id": session_id, "exception_type": type(e).__name__},
            )

        return CloseResult(class_session, present, absent)

    async def _expected_participants(self, session_id: str) -> List[str]:
        attached = await session_store.get_attached_roster(self.session, session_id)
        if attached:
            return attached
        return await roster.list_participant_ids(self.session)
