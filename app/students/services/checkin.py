"""
Check-in orchestration.

One attempt moves Received -> SessionResolved -> GeoChecked and ends as
Recorded, Rejected or AlreadyPresent. Rejections are raised as application
exceptions; an already-recorded participant is a successful outcome so that
clients replaying a queued check-in are never told they failed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import utcnow
from app.core.exceptions import (
    NotFoundError,
    OutsideGeofenceError,
    SessionExpiredError,
    ValidationError,
)
from app.core.geo import Coordinates, Geofence, ZERO_COORDINATES
from app.core.logging_utils import log_business_event
from app.core.realtime import PresencePublisher
from app.staff.crud import sessions as session_store
from app.staff.models.sessions import ClassSession
from app.staff.schemas.presence import PresenceUpdatedEvent
from app.students.crud import attendance as ledger
from app.students.crud import roster
from app.students.models.attendance import AttendanceRecord, AttendanceStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckInOutcome:
    session: ClassSession
    record: AttendanceRecord
    created: bool

    @property
    def already_marked(self) -> bool:
        return not self.created


class CheckInService:
    """Validates and records a single participant's presence"""

    def __init__(
        self,
        session: AsyncSession,
        publisher: PresencePublisher,
        geofence: Geofence,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.publisher = publisher
        self.geofence = geofence
        self.clock = clock

    async def check_in(
        self,
        participant_id: str,
        location: Coordinates,
        session_id: Optional[str] = None,
        class_code: Optional[str] = None,
    ) -> CheckInOutcome:
        class_session = await self._resolve(session_id, class_code)
        now = self.clock()
        await self._ensure_not_expired(class_session, now)

        inside, meters = self.geofence.check(location)
        if not inside:
            logger.info(
                f"Check-in rejected outside geofence for {participant_id}",
                extra={
                    "session_id": class_session.session_id,
                    "participant_id": participant_id,
                    "distance_m": round(meters, 1),
                },
            )
            raise OutsideGeofenceError(meters, self.geofence.radius_m)

        return await self._record_present(class_session, participant_id, location, now)

    async def manual_mark(
        self,
        owner_id: str,
        session_id: str,
        participant_id: str,
        name: Optional[str] = None,
    ) -> CheckInOutcome:
        """Instructor override: no location, zero coordinates"""
        participant_id = (participant_id or "").strip()
        if not participant_id:
            raise ValidationError("Participant ID is required")

        class_session = await session_store.find_active_by_id(self.session, session_id)
        if class_session is None or class_session.owner_id != owner_id:
            raise NotFoundError("Session", session_id)

        now = self.clock()
        await self._ensure_not_expired(class_session, now)

        outcome = await self._record_present(
            class_session, participant_id, ZERO_COORDINATES, now, name=name
        )
        if outcome.created:
            log_business_event(
                "attendance_manual_mark",
                "session",
                class_session.session_id,
                {"participant_id": participant_id, "owner_id": owner_id},
            )
        return outcome

    async def _resolve(
        self, session_id: Optional[str], class_code: Optional[str]
    ) -> ClassSession:
        if session_id:
            class_session = await session_store.find_active_by_id(self.session, session_id)
            if class_session is None:
                raise NotFoundError("Active session", session_id)
            return class_session

        if class_code:
            class_session = await session_store.find_active_by_code(self.session, class_code)
            if class_session is None:
                raise NotFoundError("Active session", class_code)
            return class_session

        raise ValidationError("Session ID or class code is required")

    async def _ensure_not_expired(self, class_session: ClassSession, now: datetime):
        await session_store.mark_expired_if_past(self.session, class_session, now)
        if not class_session.active:
            raise SessionExpiredError(class_session.session_id)

    async def _record_present(
        self,
        class_session: ClassSession,
        participant_id: str,
        coordinates: Coordinates,
        now: datetime,
        name: Optional[str] = None,
    ) -> CheckInOutcome:
        result = await ledger.append(
            self.session,
            class_session.session_id,
            participant_id,
            class_session.subject,
            AttendanceStatus.PRESENT,
            coordinates,
            now,
        )
        outcome = CheckInOutcome(class_session, result.record, result.created)
        if not result.created:
            return outcome

        log_business_event(
            "attendance_marked",
            "session",
            class_session.session_id,
            {"participant_id": participant_id},
        )

        display_name = name or await roster.get_display_name(self.session, participant_id)
        present_count = await ledger.count_present(self.session, class_session.session_id)
        self._broadcast(
            PresenceUpdatedEvent(
                session_id=class_session.session_id,
                participant_id=participant_id,
                name=display_name or participant_id,
                present_count=present_count,
                roster_size=class_session.roster_size,
                time=result.record.time,
            )
        )
        return outcome

    def _broadcast(self, event: PresenceUpdatedEvent):
        # The ledger row is already committed; a failed fanout only costs a live refresh
        try:
            self.publisher.publish(event.session_id, event)
        except Exception as e:
            logger.warning(
                f"Presence broadcast failed: {str(e)}",
                extra={"session_id": event.session_id, "exception_type": type(e).__name__},
            )
