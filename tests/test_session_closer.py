import math
from datetime import timedelta

import pytest

from app.core.exceptions import AuthorizationError, NotFoundError, OutsideGeofenceError
from app.core.geo import EARTH_RADIUS_M, Coordinates
from app.staff.crud import sessions as session_store
from app.staff.schemas.presence import SessionClosedEvent
from app.staff.services.session_closer import SessionCloser
from app.students.crud import attendance as ledger
from app.students.models.attendance import AttendanceStatus
from app.students.services.checkin import CheckInService

from .conftest import CAMPUS, NOW, FailingPublisher


@pytest.fixture
def closer(db, publisher, clock):
    return SessionCloser(db, publisher, clock)


async def _statuses(db, session_id):
    return {
        r.participant_id: r.status for r in await ledger.list_by_session(db, session_id)
    }


async def test_everyone_on_the_roster_ends_up_with_a_row(
    db, closer, publisher, geofence, clock
):
    s = await session_store.create_session(db, "T1", "Physics", 30, now=NOW)
    checkin = CheckInService(db, publisher, geofence, clock)
    await checkin.check_in("S001", CAMPUS, session_id=s.session_id)
    await checkin.check_in("S003", CAMPUS, session_id=s.session_id)

    result = await closer.close(s.session_id, "T1")

    assert (result.present_count, result.absent_count) == (2, 2)
    assert result.already_closed is False
    assert result.session.active is False
    assert await _statuses(db, s.session_id) == {
        "S001": AttendanceStatus.PRESENT.value,
        "S002": AttendanceStatus.ABSENT.value,
        "S003": AttendanceStatus.PRESENT.value,
        "S004": AttendanceStatus.ABSENT.value,
    }

    session_id, event = publisher.events[-1]
    assert session_id == s.session_id
    assert isinstance(event, SessionClosedEvent)
    assert (event.present_count, event.absent_count) == (2, 2)


async def test_second_close_changes_nothing(db, closer, publisher):
    s = await session_store.create_session(db, "T1", "Physics", 30, now=NOW)
    await closer.close(s.session_id, "T1")

    again = await closer.close(s.session_id, "T1")

    assert again.already_closed is True
    assert (again.present_count, again.absent_count) == (0, 4)
    assert len(await ledger.list_by_session(db, s.session_id)) == 4
    assert len(publisher.events) == 1


async def test_attached_roster_limits_absentees(db, closer):
    s = await session_store.create_session(
        db, "T1", "Physics", 30, participant_ids=["S001", "S002"], now=NOW
    )
    await ledger.append(db, s.session_id, "S001", "Physics", AttendanceStatus.PRESENT, now=NOW)

    result = await closer.close(s.session_id, "T1")

    assert (result.present_count, result.absent_count) == (1, 1)
    assert set(await _statuses(db, s.session_id)) == {"S001", "S002"}


async def test_lapsed_session_is_still_swept(db, closer, clock):
    s = await session_store.create_session(db, "T1", "Physics", 30, now=NOW)
    await session_store.mark_expired_if_past(db, s, NOW + timedelta(hours=1))

    clock.now = NOW + timedelta(hours=2)
    result = await closer.close(s.session_id, "T1")

    assert result.already_closed is False
    assert result.absent_count == 4
    assert result.session.closed_at == NOW + timedelta(hours=2)


async def test_late_check_in_keeps_present(db, closer, monkeypatch):
    """A Present row written after the absentee diff wins over the Absent row."""
    s = await session_store.create_session(db, "T1", "Physics", 30, now=NOW)

    inserted_after_snapshot = []
    original = ledger.bulk_append_absent

    async def racing_bulk(session, session_id, participant_ids, subject, now=None):
        await ledger.append(
            session, session_id, "S002", subject, AttendanceStatus.PRESENT, now=now
        )
        inserted_after_snapshot.append("S002")
        return await original(session, session_id, participant_ids, subject, now)

    monkeypatch.setattr(ledger, "bulk_append_absent", racing_bulk)
    result = await closer.close(s.session_id, "T1")

    assert inserted_after_snapshot == ["S002"]
    assert (result.present_count, result.absent_count) == (1, 3)
    assert (await _statuses(db, s.session_id))["S002"] == AttendanceStatus.PRESENT.value


async def test_close_requires_owner(closer, db):
    s = await session_store.create_session(db, "T1", "Physics", 30, now=NOW)

    with pytest.raises(AuthorizationError):
        await closer.close(s.session_id, "T2")
    with pytest.raises(NotFoundError):
        await closer.close("missing", "T1")


async def test_close_survives_broadcast_failure(db, clock):
    s = await session_store.create_session(db, "T1", "Physics", 30, now=NOW)

    result = await SessionCloser(db, FailingPublisher(), clock).close(s.session_id, "T1")

    assert result.absent_count == 4


async def test_three_participant_session_from_open_to_close(db, closer, publisher, geofence, clock):
    """A checks in, B is twice the radius away, C never shows up."""
    s = await session_store.create_session(
        db, "T1", "Physics", 30, roster_size=3,
        participant_ids=["S001", "S002", "S003"], now=NOW,
    )
    checkin = CheckInService(db, publisher, geofence, clock)
    twice_the_radius = Coordinates(
        CAMPUS.lat + math.degrees(2 * geofence.radius_m / EARTH_RADIUS_M), CAMPUS.lng
    )

    a = await checkin.check_in("S001", CAMPUS, session_id=s.session_id)
    with pytest.raises(OutsideGeofenceError) as exc_info:
        await checkin.check_in("S002", twice_the_radius, session_id=s.session_id)
    result = await closer.close(s.session_id, "T1")

    assert a.created
    assert exc_info.value.distance_m == pytest.approx(400, abs=0.01)
    assert (result.present_count, result.absent_count) == (1, 2)
    assert await _statuses(db, s.session_id) == {
        "S001": AttendanceStatus.PRESENT.value,
        "S002": AttendanceStatus.ABSENT.value,
        "S003": AttendanceStatus.ABSENT.value,
    }
