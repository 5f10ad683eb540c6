"""Roster lookups - read-only view of the registration service's data"""
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.database import db_operation
from app.students.models.roster import RosterEntry


@db_operation
async def get_display_name(session: AsyncSession, participant_id: str) -> Optional[str]:
    result = await session.execute(
        select(RosterEntry.display_name).where(RosterEntry.participant_id == participant_id)
    )
    return result.scalar_one_or_none()


@db_operation
async def get_display_names(
    session: AsyncSession, participant_ids: Iterable[str]
) -> Dict[str, str]:
    participant_ids = list(set(participant_ids))
    if not participant_ids:
        return {}
    result = await session.execute(
        select(RosterEntry.participant_id, RosterEntry.display_name).where(
            RosterEntry.participant_id.in_(participant_ids)
        )
    )
    return {participant_id: name for participant_id, name in result.all()}


@db_operation
async def list_participant_ids(session: AsyncSession) -> List[str]:
    """Every registered participant"""
    result = await session.execute(
        select(RosterEntry.participant_id).order_by(RosterEntry.participant_id)
    )
    return list(result.scalars().all())
