"""Staff Sessions Router - Open, watch, close and export class sessions"""
from typing import List, Union

from fastapi import APIRouter, Depends, Path, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import (
    CurrentUser,
    get_broadcaster,
    get_current_instructor,
    get_geofence,
)
from app.core.exceptions import NotFoundError
from app.core.geo import Geofence
from app.core.limits import limiter
from app.core.logging_utils import log_business_event
from app.core.realtime import PresenceBroadcaster
from app.staff.crud import sessions as session_store
from app.staff.models.sessions import ClassSession
from app.staff.schemas.sessions import (
    ManualMarkRequest,
    ManualMarkResponse,
    PastSessionRead,
    SessionCreate,
    SessionCreatedResponse,
    SessionEndResponse,
    SessionRead,
    SessionStats,
    SessionWithQr,
)
from app.staff.services.export import XLSX_MEDIA_TYPE, export_filename, records_to_xlsx
from app.staff.services.session_closer import SessionCloser
from app.students.crud import attendance as ledger
from app.students.crud import roster
from app.students.models.attendance import AttendanceRecord, AttendanceStatus
from app.students.schemas.attendance import (
    AlreadyMarkedResponse,
    AttendanceRecordNamed,
    AttendanceRecordRead,
)
from app.students.services.checkin import CheckInService

router = APIRouter(prefix="/staff/sessions", tags=["Staff Sessions"])


def _with_qr(class_session: ClassSession) -> SessionWithQr:
    data = SessionRead.model_validate(class_session).model_dump()
    return SessionWithQr(**data, qr_code=session_store.build_qr_payload(class_session))


async def _named_records(
    db: AsyncSession, records: List[AttendanceRecord]
) -> List[AttendanceRecordNamed]:
    names = await roster.get_display_names(db, [r.participant_id for r in records])
    return [
        AttendanceRecordNamed(
            **AttendanceRecordRead.model_validate(r).model_dump(),
            participant_name=names.get(r.participant_id, r.participant_id),
        )
        for r in records
    ]


@router.post("", response_model=SessionCreatedResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_session_endpoint(
    request: Request,
    payload: SessionCreate,
    current_user: CurrentUser = Depends(get_current_instructor),
    db: AsyncSession = Depends(get_session),
):
    """
    Open a new attendance session.

    Returns the session with its 6-digit class code and the compact JSON
    payload to render as a QR code.
    """
    class_session = await session_store.create_session_with_retry(
        db,
        owner_id=current_user.id,
        subject=payload.subject,
        duration_minutes=payload.duration_minutes,
        roster_size=payload.roster_size,
        participant_ids=payload.participant_ids,
    )

    log_business_event(
        "session_created",
        "session",
        class_session.session_id,
        {
            "owner_id": current_user.id,
            "subject": class_session.subject,
            "expires_at": class_session.expires_at.isoformat(),
        },
    )

    return SessionCreatedResponse(
        message="Session created successfully",
        session=_with_qr(class_session),
    )


@router.get("", response_model=List[SessionWithQr])
@limiter.limit("30/minute")
async def list_active_sessions(
    request: Request,
    current_user: CurrentUser = Depends(get_current_instructor),
    db: AsyncSession = Depends(get_session),
):
    """Active, unexpired sessions owned by the caller, newest first"""
    sessions = await session_store.list_active_for_owner(db, current_user.id)
    return [_with_qr(s) for s in sessions]


@router.get("/history", response_model=List[PastSessionRead])
@limiter.limit("30/minute")
async def list_past_sessions(
    request: Request,
    current_user: CurrentUser = Depends(get_current_instructor),
    db: AsyncSession = Depends(get_session),
):
    """Ended or expired sessions with their attendance, newest first"""
    sessions = await session_store.list_past_for_owner(db, current_user.id)
    records = await ledger.list_by_sessions(db, [s.session_id for s in sessions])
    named = await _named_records(db, records)

    by_session = {}
    for record in named:
        by_session.setdefault(record.session_id, []).append(record)

    result = []
    for s in sessions:
        # Absent rows after Present rows, newest first within each group
        attendance = sorted(
            by_session.get(s.session_id, []),
            key=lambda r: r.status != AttendanceStatus.PRESENT,
        )
        result.append(
            PastSessionRead(
                **SessionRead.model_validate(s).model_dump(),
                present_count=sum(1 for r in attendance if r.status == AttendanceStatus.PRESENT),
                absent_count=sum(1 for r in attendance if r.status == AttendanceStatus.ABSENT),
                attendance=attendance,
            )
        )
    return result


@router.put("/{session_id}/end", response_model=SessionEndResponse)
@limiter.limit("20/minute")
async def end_session(
    request: Request,
    session_id: str = Path(..., description="Session ID"),
    current_user: CurrentUser = Depends(get_current_instructor),
    db: AsyncSession = Depends(get_session),
    broadcaster: PresenceBroadcaster = Depends(get_broadcaster),
):
    """
    End a session and mark everyone who did not check in as Absent.

    Ending an already-ended session returns the recorded counts.
    """
    result = await SessionCloser(db, broadcaster).close(session_id, current_user.id)
    message = (
        "Session already ended" if result.already_closed else "Session ended successfully"
    )
    return SessionEndResponse(
        message=message,
        session=SessionRead.model_validate(result.session),
        stats=SessionStats(present=result.present_count, absent=result.absent_count),
    )


@router.get("/{session_id}/attendance", response_model=List[AttendanceRecordNamed])
@limiter.limit("30/minute")
async def get_session_attendance(
    request: Request,
    session_id: str = Path(..., description="Session ID"),
    current_user: CurrentUser = Depends(get_current_instructor),
    db: AsyncSession = Depends(get_session),
):
    """Attendance records for one of the caller's sessions, newest first"""
    await session_store.get_owned_session(db, session_id, current_user.id)
    records = await ledger.list_by_session(db, session_id)
    return await _named_records(db, records)


@router.post(
    "/{session_id}/manual-mark",
    response_model=Union[ManualMarkResponse, AlreadyMarkedResponse],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
async def manual_mark(
    request: Request,
    response: Response,
    payload: ManualMarkRequest,
    session_id: str = Path(..., description="Session ID"),
    current_user: CurrentUser = Depends(get_current_instructor),
    db: AsyncSession = Depends(get_session),
    broadcaster: PresenceBroadcaster = Depends(get_broadcaster),
    geofence: Geofence = Depends(get_geofence),
):
    """Mark a participant present without a location check"""
    service = CheckInService(db, broadcaster, geofence)
    outcome = await service.manual_mark(
        current_user.id, session_id, payload.participant_id, payload.name
    )

    if outcome.already_marked:
        response.status_code = status.HTTP_200_OK
        return AlreadyMarkedResponse(
            message=f"{payload.participant_id} is already marked present"
        )

    label = payload.name or payload.participant_id
    return ManualMarkResponse(
        message=f"{label} marked present manually",
        attendance=AttendanceRecordRead.model_validate(outcome.record),
    )


@router.get("/{session_id}/export")
@limiter.limit("10/minute")
async def export_session_attendance(
    request: Request,
    session_id: str = Path(..., description="Session ID"),
    current_user: CurrentUser = Depends(get_current_instructor),
    db: AsyncSession = Depends(get_session),
):
    """Download the session's attendance as an Excel workbook"""
    await session_store.get_owned_session(db, session_id, current_user.id)
    records = await ledger.list_by_session(db, session_id)
    if not records:
        raise NotFoundError("Attendance records for session", session_id)

    names = await roster.get_display_names(db, [r.participant_id for r in records])
    return Response(
        content=records_to_xlsx(records, names),
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f"attachment; filename={export_filename(session_id)}"
        },
    )
