"""
Fixtures for alumni tests.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from alumni_api.core.database import Base
from alumni_api.core.rate_limit import reset_memory_store
from alumni_api.modules.alumni.models import Alumni, AlumniCategory, ApprovalStatus
from alumni_api.modules.alumni.schemas import AlumniRegistrationCreate


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.refresh = AsyncMock()
    db.rollback = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.ttl = AsyncMock(return_value=3600)
    redis.pipeline = MagicMock()
    pipe = AsyncMock()
    pipe.incr = MagicMock()
    pipe.expire = MagicMock()
    pipe.execute = AsyncMock()
    redis.pipeline.return_value = pipe
    return redis


@pytest.fixture
def admin_id():
    return uuid4()


@pytest.fixture
def registration_data():
    """A valid self-registration request."""
    return AlumniRegistrationCreate(
        name="Amit Sharma",
        email="amit.sharma@example.com",
        phone="+91 98290 00000",
        batch_year=2008,
        class_section="XII-A",
        house="shivaji",
        category=AlumniCategory.DEFENSE,
        current_designation="Major",
        organization="Indian Army",
        location="Jaipur",
        linkedin_url="https://linkedin.com/in/amit-sharma",
        achievement="Sena Medal",
    )


@pytest.fixture
def unverified_alumnus():
    """Alumni model fresh from registration."""
    alumnus = MagicMock(spec=Alumni)
    alumnus.id = uuid4()
    alumnus.slug = "amit-sharma"
    alumnus.name = "Amit Sharma"
    alumnus.email = "amit.sharma@example.com"
    alumnus.batch_year = 2008
    alumnus.category = AlumniCategory.DEFENSE
    alumnus.approval_status = ApprovalStatus.PENDING
    alumnus.email_verified_at = None
    alumnus.verification_token = "a" * 64
    alumnus.approved_at = None
    alumnus.approved_by = None
    alumnus.rejection_reason = None
    alumnus.is_active = True
    alumnus.is_featured = False
    return alumnus


@pytest.fixture
def verified_alumnus(unverified_alumnus):
    """Alumni model with a verified email, awaiting review."""
    unverified_alumnus.email_verified_at = datetime(2026, 1, 10, 9, 30, tzinfo=UTC)
    unverified_alumnus.verification_token = None
    return unverified_alumnus


# ============================================
# In-memory database
# ============================================


@pytest_asyncio.fixture
async def session_maker():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def sent_emails():
    """
    Replace the email senders used by the dispatcher.

    Yields a dict of AsyncMocks keyed by event; each returns True.
    """
    with (
        patch(
            "alumni_api.modules.alumni.notifications.send_alumni_verification",
            new=AsyncMock(return_value=True),
        ) as verification,
        patch(
            "alumni_api.modules.alumni.notifications.send_alumni_approved",
            new=AsyncMock(return_value=True),
        ) as approved,
        patch(
            "alumni_api.modules.alumni.notifications.send_alumni_rejected",
            new=AsyncMock(return_value=True),
        ) as rejected,
    ):
        yield {"verification": verification, "approved": approved, "rejected": rejected}


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_memory_store()
    yield
    reset_memory_store()
