import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
TEST_SECRET = "attendance-test-secret-0123456789abcdef"
os.environ["JWT_SECRET"] = TEST_SECRET
os.environ["CAMPUS_LAT"] = "11.4958"
os.environ["CAMPUS_LNG"] = "77.2767"
os.environ["CAMPUS_RADIUS_M"] = "200"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_FORMAT"] = "text"

from datetime import datetime

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_session
from app.core.geo import Coordinates, Geofence
from app.core.realtime import PresenceBroadcaster
from app.main import app
from app.staff.models import ClassSession, ClassSessionRoster  # noqa: F401
from app.students.models import AttendanceRecord, RosterEntry

CAMPUS = Coordinates(11.4958, 77.2767)
NOW = datetime(2024, 3, 4, 9, 0, 0)

ROSTER = [
    ("S001", "Asha"),
    ("S002", "Bilal"),
    ("S003", "Chen"),
    ("S004", "Dana"),
]


class FrozenClock:
    """Callable clock tests can move forward"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish(self, session_id, event):
        self.events.append((session_id, event))
        return 1


class FailingPublisher:
    def publish(self, session_id, event):
        raise RuntimeError("channel down")


def _enable_savepoints(engine):
    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        session.add_all(
            RosterEntry(participant_id=pid, display_name=name) for pid, name in ROSTER
        )
        await session.commit()


@pytest.fixture
async def db(session_factory, seeded):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def geofence():
    return Geofence(CAMPUS, 200)


def make_token(sub: str, role: str, name: str = None) -> str:
    claims = {"sub": sub, "role": role}
    if name:
        claims["name"] = name
    return jwt.encode(claims, TEST_SECRET, algorithm="HS256")


def auth(sub: str, role: str) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, role)}"}


@pytest.fixture
def broadcaster():
    return PresenceBroadcaster(queue_size=10)


@pytest.fixture
async def client(session_factory, seeded, broadcaster):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.state.broadcaster = broadcaster

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
