"""Attendance Ledger CRUD - Append-only attendance facts

The (session_id, participant_id) unique constraint is the only duplicate
guard. Writes never look before they leap: a conflicting insert is detected
from the database error, so two concurrent check-ins for the same pair
cannot both succeed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.database import db_operation, utcnow
from app.core.geo import Coordinates, ZERO_COORDINATES
from app.students.models.attendance import AttendanceRecord, AttendanceStatus

logger = logging.getLogger(__name__)

_NEWEST_FIRST = (AttendanceRecord.created_at.desc(), AttendanceRecord.id.desc())


@dataclass(frozen=True)
class AppendResult:
    """Outcome of an append; created is False when the pair already existed"""

    record: AttendanceRecord
    created: bool


def _insert_ignoring_duplicates(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Bulk insert is not supported for dialect '{dialect}'")
    return insert(AttendanceRecord)


async def _get_record(
    session: AsyncSession, session_id: str, participant_id: str
) -> Optional[AttendanceRecord]:
    query = select(AttendanceRecord).where(
        and_(
            AttendanceRecord.session_id == session_id,
            AttendanceRecord.participant_id == participant_id,
        )
    )
    result = await session.execute(query)
    return result.scalar_one_or_none()


@db_operation
async def append(
    session: AsyncSession,
    session_id: str,
    participant_id: str,
    subject: str,
    status: AttendanceStatus,
    coordinates: Optional[Coordinates] = None,
    now: Optional[datetime] = None,
) -> AppendResult:
    """Insert one record; an existing pair is an idempotent, non-error outcome."""
    now = now or utcnow()
    coordinates = coordinates or ZERO_COORDINATES

    record = AttendanceRecord(
        session_id=session_id,
        participant_id=participant_id,
        subject=subject,
        date=now.strftime("%Y-%m-%d"),
        time=now.strftime("%H:%M:%S"),
        latitude=coordinates.lat,
        longitude=coordinates.lng,
        status=AttendanceStatus(status).value,
        created_at=now,
    )

    try:
        async with session.begin_nested():
            session.add(record)
    except IntegrityError:
        existing = await _get_record(session, session_id, participant_id)
        if existing is None:
            # Not the pair constraint: unknown session, missing column
            raise
        await session.commit()
        logger.debug(
            f"Attendance already recorded for {participant_id} in {session_id}",
            extra={"session_id": session_id, "participant_id": participant_id},
        )
        return AppendResult(record=existing, created=False)

    await session.commit()
    return AppendResult(record=record, created=True)


@db_operation
async def list_by_session(session: AsyncSession, session_id: str) -> List[AttendanceRecord]:
    query = (
        select(AttendanceRecord)
        .where(AttendanceRecord.session_id == session_id)
        .order_by(*_NEWEST_FIRST)
    )
    result = await session.execute(query)
    return list(result.scalars().all())


@db_operation
async def list_by_sessions(
    session: AsyncSession, session_ids: Iterable[str]
) -> List[AttendanceRecord]:
    session_ids = list(session_ids)
    if not session_ids:
        return []
    query = (
        select(AttendanceRecord)
        .where(AttendanceRecord.session_id.in_(session_ids))
        .order_by(*_NEWEST_FIRST)
    )
    result = await session.execute(query)
    return list(result.scalars().all())


@db_operation
async def list_by_participant(
    session: AsyncSession, participant_id: str, subject: Optional[str] = None
) -> List[AttendanceRecord]:
    query = select(AttendanceRecord).where(AttendanceRecord.participant_id == participant_id)
    if subject:
        query = query.where(AttendanceRecord.subject == subject)
    result = await session.execute(query.order_by(*_NEWEST_FIRST))
    return list(result.scalars().all())


@db_operation
async def count_present(session: AsyncSession, session_id: str) -> int:
    query = select(func.count(AttendanceRecord.id)).where(
        and_(
            AttendanceRecord.session_id == session_id,
            AttendanceRecord.status == AttendanceStatus.PRESENT.value,
        )
    )
    result = await session.execute(query)
    return result.scalar_one()


@db_operation
async def count_by_status(session: AsyncSession, session_id: str) -> Tuple[int, int]:
    """(present, absent) for a session"""
    query = (
        select(AttendanceRecord.status, func.count(AttendanceRecord.id))
        .where(AttendanceRecord.session_id == session_id)
        .group_by(AttendanceRecord.status)
    )
    result = await session.execute(query)
    counts = {status: count for status, count in result.all()}
    return (
        counts.get(AttendanceStatus.PRESENT.value, 0),
        counts.get(AttendanceStatus.ABSENT.value, 0),
    )


@db_operation
async def bulk_append_absent(
    session: AsyncSession,
    session_id: str,
    participant_ids: Iterable[str],
    subject: str,
    now: Optional[datetime] = None,
) -> int:
    """
    Best-effort batch of Absent rows.

    Rows whose pair already exists (a late check-in that landed after the
    absentee diff was taken) are skipped by the database; the rest of the
    batch still goes in. Returns the number of rows inserted.
    """
    participant_ids = sorted(set(participant_ids))
    if not participant_ids:
        return 0

    now = now or utcnow()
    rows = [
        {
            "session_id": session_id,
            "participant_id": participant_id,
            "subject": subject,
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M:%S"),
            "latitude": ZERO_COORDINATES.lat,
            "longitude": ZERO_COORDINATES.lng,
            "status": AttendanceStatus.ABSENT.value,
            "created_at": now,
        }
        for participant_id in participant_ids
    ]

    stmt = (
        _insert_ignoring_duplicates(session)
        .values(rows)
        .on_conflict_do_nothing(index_elements=["session_id", "participant_id"])
        .returning(AttendanceRecord.participant_id)
    )
    result = await session.execute(stmt)
    inserted = len(result.all())
    await session.commit()

    skipped = len(participant_ids) - inserted
    if skipped:
        logger.info(
            f"Absentee sweep skipped {skipped} participant(s) already recorded",
            extra={"session_id": session_id, "skipped": skipped},
        )
    return inserted
