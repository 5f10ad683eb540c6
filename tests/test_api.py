import io

import pytest
from openpyxl import load_workbook

from .conftest import CAMPUS, auth

INSTRUCTOR = auth("T1", "instructor")
OTHER_INSTRUCTOR = auth("T2", "instructor")
ASHA = auth("S001", "student")
BILAL = auth("S002", "student")

ON_CAMPUS = {"lat": CAMPUS.lat, "lng": CAMPUS.lng}
OFF_CAMPUS = {"lat": CAMPUS.lat + 0.01, "lng": CAMPUS.lng}


async def open_session(client, subject="Physics", **extra):
    response = await client.post(
        "/api/v1/staff/sessions",
        json={"subject": subject, "durationMinutes": 30, **extra},
        headers=INSTRUCTOR,
    )
    assert response.status_code == 201, response.text
    return response.json()["session"]


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["errors"]["total"] == sum(body["errors"]["by_type"].values())


async def test_requests_without_token_are_rejected(client):
    response = await client.get("/api/v1/staff/sessions")

    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "AUTHENTICATION_ERROR"
    assert body["path"] == "/api/v1/staff/sessions"


async def test_bad_token_is_rejected(client):
    response = await client.get(
        "/api/v1/students/attendance", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


async def test_students_cannot_open_sessions(client):
    response = await client.post(
        "/api/v1/staff/sessions",
        json={"subject": "Physics", "durationMinutes": 30},
        headers=ASHA,
    )

    assert response.status_code == 403
    assert response.json()["message"] == "Access denied. Instructors only."


async def test_create_session_returns_code_and_qr(client):
    session = await open_session(client)

    assert len(session["classCode"]) == 6
    assert session["active"] is True
    assert '"sessionId":"%s"' % session["sessionId"] in session["qrCode"]

    listed = await client.get("/api/v1/staff/sessions", headers=INSTRUCTOR)
    assert [s["sessionId"] for s in listed.json()] == [session["sessionId"]]


async def test_invalid_session_payload(client):
    response = await client.post(
        "/api/v1/staff/sessions",
        json={"subject": "Physics", "durationMinutes": 0},
        headers=INSTRUCTOR,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


async def test_check_in_then_retry(client, broadcaster):
    session = await open_session(client)
    watcher = broadcaster.subscribe(session["sessionId"])

    first = await client.post(
        "/api/v1/students/attendance/mark",
        json={"sessionId": session["sessionId"], "location": ON_CAMPUS},
        headers=ASHA,
    )
    second = await client.post(
        "/api/v1/students/attendance/mark-by-code",
        json={"classCode": session["classCode"], "location": ON_CAMPUS},
        headers=ASHA,
    )

    assert first.status_code == 201
    assert first.json()["attendance"]["status"] == "Present"
    assert first.json()["attendance"]["participantId"] == "S001"

    assert second.status_code == 200
    assert second.json()["alreadyMarked"] is True

    event = await watcher.get(timeout=1)
    assert event["event"] == "presenceUpdated"
    assert event["name"] == "Asha"
    assert event["presentCount"] == 1
    assert watcher.pending() == 0


async def test_check_in_outside_campus(client):
    session = await open_session(client)

    response = await client.post(
        "/api/v1/students/attendance/mark-by-code",
        json={"classCode": session["classCode"], "location": OFF_CAMPUS},
        headers=ASHA,
    )

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "OUTSIDE_GEOFENCE"
    assert body["message"].startswith("Outside campus radius. Distance is ")


async def test_malformed_class_code(client):
    response = await client.post(
        "/api/v1/students/attendance/mark-by-code",
        json={"classCode": "12ab56", "location": ON_CAMPUS},
        headers=ASHA,
    )
    assert response.status_code == 400


async def test_unknown_session(client):
    response = await client.post(
        "/api/v1/students/attendance/mark",
        json={"sessionId": "missing", "location": ON_CAMPUS},
        headers=ASHA,
    )
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


async def test_end_session_marks_absentees(client, broadcaster):
    session = await open_session(client)
    sid = session["sessionId"]
    await client.post(
        "/api/v1/students/attendance/mark",
        json={"sessionId": sid, "location": ON_CAMPUS},
        headers=ASHA,
    )
    watcher = broadcaster.subscribe(sid)

    ended = await client.put(f"/api/v1/staff/sessions/{sid}/end", headers=INSTRUCTOR)

    assert ended.status_code == 200
    body = ended.json()
    assert body["message"] == "Session ended successfully"
    assert body["stats"] == {"present": 1, "absent": 3}
    assert body["session"]["active"] is False
    assert (await watcher.get(timeout=1))["event"] == "sessionClosed"

    again = await client.put(f"/api/v1/staff/sessions/{sid}/end", headers=INSTRUCTOR)
    assert again.json()["stats"] == {"present": 1, "absent": 3}

    late = await client.post(
        "/api/v1/students/attendance/mark",
        json={"sessionId": sid, "location": ON_CAMPUS},
        headers=BILAL,
    )
    assert late.status_code == 404


async def test_only_the_owner_can_end(client):
    session = await open_session(client)

    response = await client.put(
        f"/api/v1/staff/sessions/{session['sessionId']}/end", headers=OTHER_INSTRUCTOR
    )

    assert response.status_code == 403


async def test_session_attendance_and_export(client):
    session = await open_session(client)
    sid = session["sessionId"]

    empty_export = await client.get(f"/api/v1/staff/sessions/{sid}/export", headers=INSTRUCTOR)
    assert empty_export.status_code == 404

    await client.post(
        "/api/v1/students/attendance/mark",
        json={"sessionId": sid, "location": ON_CAMPUS},
        headers=ASHA,
    )

    records = await client.get(f"/api/v1/staff/sessions/{sid}/attendance", headers=INSTRUCTOR)
    assert records.status_code == 200
    assert records.json()[0]["participantName"] == "Asha"

    export = await client.get(f"/api/v1/staff/sessions/{sid}/export", headers=INSTRUCTOR)
    assert export.status_code == 200
    assert export.headers["content-type"] == (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert f"attendance_{sid}.xlsx" in export.headers["content-disposition"]

    workbook = load_workbook(io.BytesIO(export.content))
    assert workbook.sheetnames == ["Attendance"]
    rows = list(workbook["Attendance"].iter_rows(values_only=True))
    assert len(rows) == 2
    assert rows[0][:3] == ("ParticipantId", "Name", "Subject")
    assert rows[1][:3] == ("S001", "Asha", "Physics")
    assert rows[1][5] == "Present"
    assert rows[1][6] == pytest.approx(CAMPUS.lat)


async def test_manual_mark(client):
    session = await open_session(client)
    url = f"/api/v1/staff/sessions/{session['sessionId']}/manual-mark"

    first = await client.post(url, json={"participantId": "S004", "name": "Dana"}, headers=INSTRUCTOR)
    second = await client.post(url, json={"participantId": "S004"}, headers=INSTRUCTOR)

    assert first.status_code == 201
    assert first.json()["attendance"]["latitude"] == 0
    assert second.status_code == 200
    assert second.json()["alreadyMarked"] is True

    foreign = await client.post(url, json={"participantId": "S001"}, headers=OTHER_INSTRUCTOR)
    assert foreign.status_code == 404


async def test_history_and_analytics(client):
    physics = await open_session(client, "Physics")
    await client.post(
        "/api/v1/students/attendance/mark",
        json={"sessionId": physics["sessionId"], "location": ON_CAMPUS},
        headers=ASHA,
    )
    await client.put(f"/api/v1/staff/sessions/{physics['sessionId']}/end", headers=INSTRUCTOR)
    await open_session(client, "Maths")

    history = (await client.get("/api/v1/staff/sessions/history", headers=INSTRUCTOR)).json()
    assert len(history) == 1
    assert history[0]["presentCount"] == 1
    assert history[0]["absentCount"] == 3
    assert history[0]["attendance"][0]["status"] == "Present"

    analytics = (await client.get("/api/v1/staff/analytics", headers=INSTRUCTOR)).json()
    assert analytics["overall"]["totalSessions"] == 2
    assert analytics["overall"]["avgAttendance"] == 25
    assert analytics["subjects"] == [
        {"name": "Physics", "present": 1, "total": 4, "percentage": 25}
    ]


async def test_student_history_and_stats(client):
    physics = await open_session(client, "Physics")
    maths = await open_session(client, "Maths")
    for session in (physics, maths):
        await client.post(
            "/api/v1/students/attendance/mark",
            json={"sessionId": session["sessionId"], "location": ON_CAMPUS},
            headers=ASHA,
        )
    await client.put(f"/api/v1/staff/sessions/{maths['sessionId']}/end", headers=INSTRUCTOR)

    mine = (await client.get("/api/v1/students/attendance", headers=ASHA)).json()
    assert {r["subject"] for r in mine} == {"Physics", "Maths"}

    only_maths = await client.get(
        "/api/v1/students/attendance", params={"subject": "Maths"}, headers=ASHA
    )
    assert [r["subject"] for r in only_maths.json()] == ["Maths"]

    bilal = (await client.get("/api/v1/students/attendance/stats", headers=BILAL)).json()
    assert bilal["overall"] == {"present": 0, "total": 1, "percentage": 0}

    asha = (await client.get("/api/v1/students/attendance/stats", headers=ASHA)).json()
    assert asha["overall"]["percentage"] == 100
    assert len(asha["recent"]) == 2


@pytest.mark.parametrize("path", ["/api/v1/students/attendance", "/api/v1/students/attendance/stats"])
async def test_instructors_cannot_read_student_views(client, path):
    response = await client.get(path, headers=INSTRUCTOR)
    assert response.status_code == 403
