"""Staff Analytics Router - Attendance dashboard across an instructor's sessions"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import CurrentUser, get_current_instructor
from app.core.limits import limiter
from app.staff.crud.sessions import list_for_owner
from app.staff.schemas.analytics import InstructorAnalyticsResponse
from app.staff.services.stats import instructor_summary
from app.students.crud.attendance import list_by_sessions

router = APIRouter(prefix="/staff/analytics", tags=["Staff Analytics"])


@router.get("", response_model=InstructorAnalyticsResponse)
@limiter.limit("30/minute")
async def get_instructor_analytics(
    request: Request,
    days: int = Query(30, ge=1, le=365, description="Number of dates in the daily trend"),
    current_user: CurrentUser = Depends(get_current_instructor),
    db: AsyncSession = Depends(get_session),
):
    """
    Attendance analytics for the caller.

    Returns:
    - Per-subject present/total and percentage
    - Per-date trend, oldest first
    - Session count and overall average attendance
    """
    sessions = await list_for_owner(db, current_user.id)
    records = await list_by_sessions(db, [s.session_id for s in sessions])
    return instructor_summary(len(sessions), records, days)
