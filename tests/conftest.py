import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "whsec-test"
os.environ["LIFECYCLE_SWEEP_ENABLED"] = "false"
os.environ["ENV"] = "test"

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402,F401 - register tables
from app.models.schedule import ScheduleSettings, StylistSchedule  # noqa: E402
from app.models.service import StylistService  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.services.appointment_service import AppointmentLifecycle  # noqa: E402
from app.services.change_feed import AppointmentFeed  # noqa: E402
from helpers import STYLIST_TZ, FakeCaptureHook, RecordingNotifier  # noqa: E402


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def capture_hook():
    return FakeCaptureHook()


@pytest.fixture
def feed(session_maker):
    return AppointmentFeed(session_maker)


@pytest.fixture
def lifecycle(session, notifier, feed, capture_hook):
    return AppointmentLifecycle(session, notifier, feed, capture_hook)


async def _add(session: AsyncSession, obj):
    session.add(obj)
    await session.commit()
    await session.refresh(obj)
    return obj


@pytest.fixture
async def stylist(session):
    return await _add(
        session,
        User(
            email="maya@example.com",
            full_name="Maya Johnson",
            phone="+15550001111",
            role=UserRole.STYLIST.value,
            timezone=STYLIST_TZ,
        ),
    )


@pytest.fixture
async def client_user(session):
    return await _add(
        session,
        User(email="ada@example.com", full_name="Ada Client", phone="+15550002222", timezone="America/Chicago"),
    )


@pytest.fixture
async def other_client(session):
    return await _add(session, User(email="bo@example.com", full_name="Bo Client", timezone=STYLIST_TZ))


@pytest.fixture
async def service(session, stylist):
    return await _add(
        session,
        StylistService(
            stylist_id=stylist.id,
            name="Knotless Braids",
            duration_minutes=90,
            price=200.0,
            deposit_amount=50.0,
        ),
    )


@pytest.fixture
async def short_service(session, stylist):
    return await _add(
        session,
        StylistService(stylist_id=stylist.id, name="Braid Touch-up", duration_minutes=60, price=80.0, deposit_amount=20.0),
    )


@pytest.fixture
def save_schedule(session):
    async def _save(stylist_id: int, schedule: ScheduleSettings) -> StylistSchedule:
        row = StylistSchedule(stylist_id=stylist_id, timezone=schedule.timezone)
        row.apply(schedule)
        return await _add(session, row)

    return _save
