import os

# Select the test settings before any project module reads the environment
os.environ["MODE"] = "test"

from datetime import date

import pytest
from sqlalchemy import create_engine, delete
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from httpx import AsyncClient, ASGITransport

from main import app as fastapi_app
import db as project_db
import db_models  # noqa: F401  ensure models are registered
from db_base import Base
from db_models.academic_cycle import AcademicCycle, CycleState
from db_models.user import User, UserRole
from coordination import CycleEventCoordinator
from core.deps import get_coordinator
from core.security import create_access_token


# ---------- fake time for the event coordinator ----------

class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class ManualTimer:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test advances the clock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, callback) -> ManualTimer:
        timer = ManualTimer(self.clock.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        self.clock.now += seconds
        for timer in sorted(self.pending, key=lambda t: t.due):
            if timer.cancelled or timer.due > self.clock.now:
                continue
            timer.fired = True
            timer.callback()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def coordinator(clock, scheduler):
    return CycleEventCoordinator(
        clock=clock,
        scheduler=scheduler,
        debounce_seconds=0.2,
        duplicate_window_seconds=0.5,
    )


# ---------- database ----------

@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def database_path(tmp_path_factory):
    return tmp_path_factory.mktemp("db") / "academic_cycles_test.db"


@pytest.fixture(scope="session")
def sync_engine(database_path):
    # Create/drop tables with a plain synchronous engine
    engine = create_engine(f"sqlite:///{database_path}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="session")
def session_factory(database_path, sync_engine):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        future=True,
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )
    project_db.configure_sqlite_locking(engine)
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="session")
def users(sync_engine):
    """Seed one user per role; returns their ids keyed by role."""
    Session = sessionmaker(bind=sync_engine)
    with Session() as session:
        seeded = {
            role: User(
                email=f"{role.value.lower()}@test.com",
                full_name=f"Test {role.value.title()}",
                role=role.value,
                is_active=True,
            )
            for role in UserRole
        }
        session.add_all(seeded.values())
        session.commit()
        return {role: user.id for role, user in seeded.items()}


@pytest.fixture
def admin_id(users):
    return users[UserRole.ADMIN]


@pytest.fixture(autouse=True)
def clean_cycles(sync_engine):
    """Cycles are never deleted by the app; each test starts from none."""
    with sync_engine.begin() as conn:
        conn.execute(delete(AcademicCycle))
    yield


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_cycle(admin_id):
    """Insert a cycle directly in the given state, bypassing transitions."""
    counter = iter(range(1, 10_000))

    async def _make(session: AsyncSession, state: CycleState = CycleState.PREPARATION, **overrides) -> int:
        n = next(counter)
        values = {
            "name": f"Cycle {n}",
            "state": CycleState(state).value,
            "start_date": date(2025, 3, 1),
            "end_date": date(2025, 7, 31),
            "semester": "I",
            "year": 2025,
            "created_by": admin_id,
        }
        values.update(overrides)
        cycle = AcademicCycle(**values)
        session.add(cycle)
        await session.commit()
        return cycle.id

    return _make


# ---------- HTTP ----------

@pytest.fixture
async def async_client(session_factory, coordinator):
    # Override the get_session dependency to create a fresh session for each request
    async def override_get_session():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[project_db.get_session] = override_get_session
    fastapi_app.dependency_overrides[get_coordinator] = lambda: coordinator

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://testserver") as ac:
        yield ac

    # Clean up
    fastapi_app.dependency_overrides.clear()


def _headers_for(user_id: int) -> dict[str, str]:
    token = create_access_token(data={"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(users):
    """Return authorization headers for admin user."""
    return _headers_for(users[UserRole.ADMIN])


@pytest.fixture
def teacher_headers(users):
    """Return authorization headers for a non-admin user."""
    return _headers_for(users[UserRole.TEACHER])
