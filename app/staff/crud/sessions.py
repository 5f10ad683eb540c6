"""Class Session CRUD - Creation, lookup, expiry and close of check-in sessions"""
import json
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import DEFAULT_ROSTER_SIZE, SESSION_CODE_ATTEMPTS
from app.core.database import db_operation, utcnow
from app.core.exceptions import (
    AuthorizationError,
    DuplicateCodeCollision,
    NotFoundError,
    ValidationError,
)
from app.staff.models.sessions import ClassSession, ClassSessionRoster

logger = logging.getLogger(__name__)


def generate_short_code() -> str:
    """Random 6-digit code in 100000..999999"""
    return str(100000 + secrets.randbelow(900000))


def build_qr_payload(session: ClassSession, now: Optional[datetime] = None) -> str:
    """Compact JSON advertisement small enough for any QR renderer"""
    now = now or utcnow()
    epoch_ms = int((now - datetime(1970, 1, 1)).total_seconds() * 1000)
    return json.dumps(
        {
            "sessionId": session.session_id,
            "ownerId": session.owner_id,
            "subject": session.subject,
            "timestamp": epoch_ms,
        },
        separators=(",", ":"),
    )


async def _active_code_taken(session: AsyncSession, short_code: str) -> bool:
    query = select(ClassSession.id).where(
        and_(ClassSession.short_code == short_code, ClassSession.active == True)
    )
    result = await session.execute(query)
    return result.first() is not None


@db_operation
async def create_session(
    session: AsyncSession,
    owner_id: str,
    subject: str,
    duration_minutes: int,
    roster_size: Optional[int] = None,
    participant_ids: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
    code_factory: Callable[[], str] = generate_short_code,
) -> ClassSession:
    """
    Open a new session.

    Raises DuplicateCodeCollision when the drawn code belongs to another
    active session; callers draw again.
    """
    subject = (subject or "").strip()
    if not subject:
        raise ValidationError("Please provide subject and durationMinutes")
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationError("durationMinutes must be a positive number")

    now = now or utcnow()
    short_code = code_factory()

    if await _active_code_taken(session, short_code):
        raise DuplicateCodeCollision(short_code)

    invited = sorted({str(p).strip() for p in participant_ids or () if str(p).strip()})
    if roster_size is None:
        roster_size = len(invited) if invited else DEFAULT_ROSTER_SIZE

    class_session = ClassSession(
        session_id=str(uuid.uuid4()),
        short_code=short_code,
        owner_id=owner_id,
        subject=subject,
        created_at=now,
        expires_at=now + timedelta(minutes=duration_minutes),
        active=True,
        roster_size=roster_size,
    )

    session.add(class_session)
    for participant_id in invited:
        session.add(
            ClassSessionRoster(
                session_id=class_session.session_id,
                participant_id=participant_id,
            )
        )

    # Two creators drawing the same code between the check and the insert
    # are settled by the partial unique index on active codes
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise DuplicateCodeCollision(short_code)

    return class_session


async def create_session_with_retry(
    session: AsyncSession,
    owner_id: str,
    subject: str,
    duration_minutes: int,
    roster_size: Optional[int] = None,
    participant_ids: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
    code_factory: Callable[[], str] = generate_short_code,
    attempts: int = SESSION_CODE_ATTEMPTS,
) -> ClassSession:
    """create_session with fresh codes on collision"""
    participant_ids = list(participant_ids or ())
    last_error = None

    for attempt in range(attempts):
        try:
            return await create_session(
                session,
                owner_id,
                subject,
                duration_minutes,
                roster_size=roster_size,
                participant_ids=participant_ids,
                now=now,
                code_factory=code_factory,
            )
        except DuplicateCodeCollision as e:
            last_error = e
            logger.warning(
                f"Class code collision (attempt {attempt + 1}/{attempts})",
                extra={"short_code": e.details.get("short_code"), "owner_id": owner_id},
            )

    raise last_error


@db_operation
async def find_active_by_id(session: AsyncSession, session_id: str) -> Optional[ClassSession]:
    query = select(ClassSession).where(
        and_(ClassSession.session_id == session_id, ClassSession.active == True)
    )
    result = await session.execute(query)
    return result.scalar_one_or_none()


@db_operation
async def find_active_by_code(session: AsyncSession, short_code: str) -> Optional[ClassSession]:
    query = select(ClassSession).where(
        and_(ClassSession.short_code == short_code, ClassSession.active == True)
    )
    result = await session.execute(query)
    return result.scalar_one_or_none()


@db_operation
async def get_by_id(session: AsyncSession, session_id: str) -> Optional[ClassSession]:
    result = await session.execute(
        select(ClassSession).where(ClassSession.session_id == session_id)
    )
    return result.scalar_one_or_none()


async def get_owned_session(
    session: AsyncSession, session_id: str, owner_id: str
) -> ClassSession:
    """Session in any state, provided it belongs to owner_id"""
    class_session = await get_by_id(session, session_id)
    if class_session is None:
        raise NotFoundError("Session", session_id)
    if class_session.owner_id != owner_id:
        raise AuthorizationError(
            "Session does not belong to you",
            {"session_id": session_id},
        )
    return class_session


@db_operation
async def mark_expired_if_past(
    session: AsyncSession, class_session: ClassSession, now: Optional[datetime] = None
) -> ClassSession:
    """Lazy expiry: flips an active session past its deadline to inactive."""
    now = now or utcnow()
    if class_session.active and class_session.is_past_expiry(now):
        class_session.active = False
        await session.commit()
        logger.info(
            f"Session {class_session.session_id} expired",
            extra={"session_id": class_session.session_id, "expires_at": str(class_session.expires_at)},
        )
    return class_session


@db_operation
async def close_session(
    session: AsyncSession,
    session_id: str,
    owner_id: str,
    now: Optional[datetime] = None,
) -> ClassSession:
    """Owner-initiated end; already-closed sessions are returned unchanged"""
    class_session = await get_owned_session(session, session_id, owner_id)
    if class_session.closed_at is None:
        class_session.active = False
        class_session.closed_at = now or utcnow()
        await session.commit()
    return class_session


@db_operation
async def list_active_for_owner(
    session: AsyncSession, owner_id: str, now: Optional[datetime] = None
) -> List[ClassSession]:
    now = now or utcnow()
    query = (
        select(ClassSession)
        .where(
            and_(
                ClassSession.owner_id == owner_id,
                ClassSession.active == True,
                ClassSession.expires_at > now,
            )
        )
        .order_by(ClassSession.created_at.desc(), ClassSession.id.desc())
    )
    result = await session.execute(query)
    return list(result.scalars().all())


@db_operation
async def list_past_for_owner(
    session: AsyncSession,
    owner_id: str,
    now: Optional[datetime] = None,
    limit: int = 50,
) -> List[ClassSession]:
    """Ended or expired sessions, newest first"""
    now = now or utcnow()
    query = (
        select(ClassSession)
        .where(
            and_(
                ClassSession.owner_id == owner_id,
                or_(ClassSession.active == False, ClassSession.expires_at <= now),
            )
        )
        .order_by(ClassSession.created_at.desc(), ClassSession.id.desc())
        .limit(limit)
    )
    result = await session.execute(query)
    return list(result.scalars().all())


@db_operation
async def list_for_owner(session: AsyncSession, owner_id: str) -> List[ClassSession]:
    query = (
        select(ClassSession)
        .where(ClassSession.owner_id == owner_id)
        .order_by(ClassSession.created_at.desc(), ClassSession.id.desc())
    )
    result = await session.execute(query)
    return list(result.scalars().all())


@db_operation
async def get_attached_roster(session: AsyncSession, session_id: str) -> List[str]:
    """Participant ids invited to the session; empty when none were attached"""
    query = (
        select(ClassSessionRoster.participant_id)
        .where(ClassSessionRoster.session_id == session_id)
        .order_by(ClassSessionRoster.participant_id)
    )
    result = await session.execute(query)
    return list(result.scalars().all())
