"""
Shared test fixtures for the Duty Roster test suite.

Every test gets its own in-memory aiosqlite database (foreign keys on, so
cascades behave like PostgreSQL) and a fixed clock it can move around.
"""

import os
import sys
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["SECRET_KEY"] = "test-secret-key-for-the-roster-suite"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SWEEP_ENABLED"] = "false"
os.environ["EXPOSE_VERIFICATION_TOKEN"] = "true"
os.environ["TIMEZONE_OFFSET"] = "-03:00"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from roster.api.v1.deps import get_clock, get_db
from roster.core.security import create_access_token, get_password_hash
from roster.db.base import Base
from roster.db.session import enable_sqlite_foreign_keys
from roster.main import app
from roster.models import Department, DepartmentLeader, Member, Position, Schedule, User

LOCAL_TZ = timezone(timedelta(hours=-3))
SERVICE_DAY = date(2025, 6, 1)
PASSWORD = "correct-horse-1"
_PASSWORD_HASH = get_password_hash(PASSWORD)


class FixedClock:
    """Clock pinned to a local moment; tests move it with ``set``."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def set(self, hour: int, minute: int = 0, day: date | None = None) -> None:
        day = day or self.moment.date()
        self.moment = datetime(day.year, day.month, day.day, hour, minute, tzinfo=LOCAL_TZ)

    def now(self) -> datetime:
        return self.moment

    def today(self) -> date:
        return self.moment.date()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 6, 1, 10, 0, tzinfo=LOCAL_TZ))


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh database per test, tables created up front."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine.sync_engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory, clock) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Data builders ───────────────────────────────────────────────────
def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def make_user(db_session: AsyncSession):
    async def _make(
        email: str,
        role: str = "member",
        approval_status: str = "approved",
        email_verified: bool = True,
        member_id: int | None = None,
        led_department_ids: tuple[int, ...] = (),
    ) -> User:
        user = User(
            email=email,
            hashed_password=_PASSWORD_HASH,
            full_name=email.split("@")[0].title(),
            role=role,
            approval_status=approval_status,
            email_verified=email_verified,
            member_id=member_id,
        )
        db_session.add(user)
        await db_session.flush()
        for department_id in led_department_ids:
            db_session.add(DepartmentLeader(department_id=department_id, user_id=user.id))
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user("admin@roster.test", role="admin")


@pytest.fixture
async def admin_headers(admin: User) -> dict[str, str]:
    return auth_headers(admin)


@pytest.fixture
async def roster_data(db_session: AsyncSession) -> dict:
    """Two departments with one position each and two members."""
    worship = Department(name="Worship", color="#aa3355")
    kids = Department(name="Kids", color="#33aa55")
    db_session.add_all([worship, kids])
    await db_session.flush()

    singer = Position(department_id=worship.id, name="Singer")
    storyteller = Position(department_id=kids.id, name="Storyteller")
    maria = Member(name="Maria Souza")
    joao = Member(name="Joao Lima")
    db_session.add_all([singer, storyteller, maria, joao])
    await db_session.commit()

    return {
        "worship": worship,
        "kids": kids,
        "singer": singer,
        "storyteller": storyteller,
        "maria": maria,
        "joao": joao,
    }


@pytest.fixture
def make_schedule(db_session: AsyncSession):
    async def _make(member: Member, department: Department, position: Position, day: date = SERVICE_DAY) -> Schedule:
        schedule = Schedule(
            member_id=member.id,
            department_id=department.id,
            position_id=position.id,
            date=day,
            exclusive_day=day,
        )
        db_session.add(schedule)
        await db_session.commit()
        await db_session.refresh(schedule)
        return schedule

    return _make
