"""Test configuration and fixtures for FitCoach API."""

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fitcoach.config.database import Base, get_db
from fitcoach.core.security.jwt import create_access_token
from fitcoach.domains.schedule.intervals import ensure_utc
from fitcoach.domains.schedule.models import (
    SessionStatus,
    TrainerAvailability,
    TrainerAvailabilityOverride,
    TrainingSession,
)
from fitcoach.domains.users.models import User, UserRole
from fitcoach.main import create_app

# Test database URL - use SQLite in-memory for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

LONDON = ZoneInfo("Europe/London")

# Mondays far enough ahead to stay in the future; January is GMT, July is BST
WINTER_MONDAY = date(2030, 1, 7)
SUMMER_MONDAY = date(2030, 7, 1)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for tests."""
    return "asyncio"


@pytest.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
    )

    # Import all models to register them
    from fitcoach.domains import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture(scope="function")
async def client(test_engine, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    app = create_app()

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# =============================================================================
# Users
# =============================================================================


async def _create_user(
    db: AsyncSession,
    role: UserRole,
    name: str,
    current_trainer_id: uuid.UUID | None = None,
) -> User:
    user_id = uuid.uuid4()
    user = User(
        id=user_id,
        email=f"{name.lower().replace(' ', '.')}-{user_id.hex[:8]}@example.com",
        name=name,
        role=role,
        is_active=True,
        current_trainer_id=current_trainer_id,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def trainer(db_session: AsyncSession) -> User:
    """Create a trainer."""
    return await _create_user(db_session, UserRole.TRAINER, "Tess Trainer")


@pytest.fixture
async def other_trainer(db_session: AsyncSession) -> User:
    """Create a second trainer with no members."""
    return await _create_user(db_session, UserRole.TRAINER, "Oscar Trainer")


@pytest.fixture
async def member(db_session: AsyncSession, trainer: User) -> User:
    """Create a member assigned to ``trainer``."""
    return await _create_user(db_session, UserRole.MEMBER, "Mia Member", current_trainer_id=trainer.id)


@pytest.fixture
async def other_member(db_session: AsyncSession, trainer: User) -> User:
    """Create another member of the same trainer."""
    return await _create_user(db_session, UserRole.MEMBER, "Max Member", current_trainer_id=trainer.id)


@pytest.fixture
async def unassigned_member(db_session: AsyncSession) -> User:
    """Create a member without a trainer."""
    return await _create_user(db_session, UserRole.MEMBER, "Una Member")


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Build bearer headers for a user."""
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}
    return _headers


# =============================================================================
# Availability and sessions
# =============================================================================


@pytest.fixture
def add_window(db_session: AsyncSession):
    """Add a recurring window (0=Monday) for a trainer."""
    async def _add(trainer_id: uuid.UUID, day_of_week: int, start: str, end: str) -> TrainerAvailability:
        window = TrainerAvailability(
            trainer_id=trainer_id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
        )
        db_session.add(window)
        await db_session.commit()
        return window
    return _add


@pytest.fixture
def add_override(db_session: AsyncSession):
    """Add a date override; an empty list closes the day."""
    async def _add(trainer_id: uuid.UUID, specific_date: date, windows: list[dict]) -> TrainerAvailabilityOverride:
        override = TrainerAvailabilityOverride(
            trainer_id=trainer_id,
            specific_date=specific_date,
            windows=windows,
        )
        db_session.add(override)
        await db_session.commit()
        return override
    return _add


@pytest.fixture
def add_session(db_session: AsyncSession):
    """Insert a session row directly, bypassing booking checks."""
    async def _add(
        trainer_id: uuid.UUID,
        member_id: uuid.UUID,
        scheduled_date: datetime,
        status: SessionStatus = SessionStatus.SCHEDULED,
        duration_minutes: int = 60,
    ) -> TrainingSession:
        session = TrainingSession(
            trainer_id=trainer_id,
            member_id=member_id,
            scheduled_date=ensure_utc(scheduled_date),
            duration_minutes=duration_minutes,
            status=status,
        )
        db_session.add(session)
        await db_session.commit()
        await db_session.refresh(session)
        return session
    return _add
