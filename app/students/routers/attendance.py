"""Student Attendance Router - Endpoints for check-in and attendance history"""
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import (
    CurrentUser,
    get_broadcaster,
    get_current_student,
    get_geofence,
)
from app.core.geo import Geofence
from app.core.limits import limiter
from app.core.realtime import PresenceBroadcaster
from app.staff.services.stats import participant_summary
from app.students.crud.attendance import list_by_participant
from app.students.schemas.attendance import (
    AlreadyMarkedResponse,
    AttendanceRecordRead,
    CheckInCreatedResponse,
    MarkAttendanceRequest,
    MarkByCodeRequest,
    StudentStatsResponse,
)
from app.students.services.checkin import CheckInOutcome, CheckInService

router = APIRouter(prefix="/students/attendance", tags=["Student Attendance"])


def get_checkin_service(
    db: AsyncSession = Depends(get_session),
    broadcaster: PresenceBroadcaster = Depends(get_broadcaster),
    geofence: Geofence = Depends(get_geofence),
) -> CheckInService:
    return CheckInService(db, broadcaster, geofence)


def _checkin_response(outcome: CheckInOutcome, response: Response):
    if outcome.already_marked:
        response.status_code = status.HTTP_200_OK
        return AlreadyMarkedResponse(
            message="Attendance already marked for this session"
        )
    return CheckInCreatedResponse(
        message="Attendance marked successfully",
        attendance=AttendanceRecordRead.model_validate(outcome.record),
    )


@router.post(
    "/mark",
    response_model=Union[CheckInCreatedResponse, AlreadyMarkedResponse],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("10/minute")
async def mark_attendance(
    request: Request,
    response: Response,
    payload: MarkAttendanceRequest,
    current_user: CurrentUser = Depends(get_current_student),
    service: CheckInService = Depends(get_checkin_service),
):
    """
    Check in to a session scanned from its QR code.

    The reported location must be inside the campus radius. Repeating a
    successful check-in returns 200 with ``alreadyMarked`` set instead of an
    error.
    """
    outcome = await service.check_in(
        current_user.id,
        payload.location.to_coordinates(),
        session_id=payload.session_id,
    )
    return _checkin_response(outcome, response)


@router.post(
    "/mark-by-code",
    response_model=Union[CheckInCreatedResponse, AlreadyMarkedResponse],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("10/minute")
async def mark_attendance_by_code(
    request: Request,
    response: Response,
    payload: MarkByCodeRequest,
    current_user: CurrentUser = Depends(get_current_student),
    service: CheckInService = Depends(get_checkin_service),
):
    """Check in by typing the 6-digit class code shown in the room"""
    outcome = await service.check_in(
        current_user.id,
        payload.location.to_coordinates(),
        class_code=payload.class_code,
    )
    return _checkin_response(outcome, response)


@router.get("", response_model=List[AttendanceRecordRead])
@limiter.limit("30/minute")
async def get_my_attendance(
    request: Request,
    subject: Optional[str] = Query(None, description="Only records for this subject"),
    current_user: CurrentUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_session),
):
    """Caller's attendance history, newest first"""
    records = await list_by_participant(db, current_user.id, subject=subject or None)
    return [AttendanceRecordRead.model_validate(r) for r in records]


@router.get("/stats", response_model=StudentStatsResponse)
@limiter.limit("30/minute")
async def get_my_attendance_stats(
    request: Request,
    current_user: CurrentUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_session),
):
    """Per-subject percentages, overall totals and the last 10 records"""
    records = await list_by_participant(db, current_user.id)
    return participant_summary(records)
