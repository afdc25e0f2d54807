from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from routine_compliance.main import app
from routine_compliance.db import Base
from routine_compliance.deps import get_db, get_now
from routine_compliance.models import (
    ROUTINE_DRAFT,
    STATUS_PENDING,
    Routine,
    RoutineProduct,
    ScheduledStepCompletion,
    UserProfile,
)

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Friday 2025-11-07, 10:00 UTC. London is on GMT, so local == UTC.
NOW = datetime(2025, 11, 7, 10, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """Test client with DB override and a pinned clock."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: NOW
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def session_factory():
    """Sessionmaker bound to the test engine, for code that opens its own sessions."""
    return TestingSessionLocal


@pytest.fixture
def profile(db_session):
    p = UserProfile(timezone="Europe/London")
    db_session.add(p)
    db_session.commit()
    db_session.refresh(p)
    return p


@pytest.fixture
def make_profile(db_session):
    def _make(tz="Europe/London"):
        p = UserProfile(timezone=tz)
        db_session.add(p)
        db_session.commit()
        return p
    return _make


@pytest.fixture
def make_routine(db_session):
    def _make(profile, start_date=TODAY, end_date=None, status=ROUTINE_DRAFT, name="Routine"):
        r = Routine(
            user_profile_id=profile.id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            status=status,
        )
        db_session.add(r)
        db_session.commit()
        return r
    return _make


@pytest.fixture
def make_product(db_session):
    def _make(
        routine,
        frequency="daily",
        days=None,
        time_of_day="morning",
        order=0,
        routine_step="Cleanser",
        product_name="Gentle Cleanser",
    ):
        p = RoutineProduct(
            routine_id=routine.id,
            user_profile_id=routine.user_profile_id,
            routine_step=routine_step,
            product_name=product_name,
            frequency=frequency,
            days=days,
            time_of_day=time_of_day,
            order=order,
        )
        db_session.add(p)
        db_session.commit()
        return p
    return _make


@pytest.fixture
def make_step(db_session):
    """Insert a completion row with explicit deadlines."""
    def _make(
        product,
        scheduled_date=TODAY,
        on_time_deadline=datetime(2025, 11, 7, 14, 0, tzinfo=timezone.utc),
        grace_period_end=datetime(2025, 11, 7, 20, 0, tzinfo=timezone.utc),
        status=STATUS_PENDING,
        completed_at=None,
    ):
        s = ScheduledStepCompletion(
            routine_product_id=product.id,
            user_profile_id=product.user_profile_id,
            scheduled_date=scheduled_date,
            scheduled_time_of_day=product.time_of_day,
            on_time_deadline=on_time_deadline,
            grace_period_end=grace_period_end,
            status=status,
            completed_at=completed_at,
        )
        db_session.add(s)
        db_session.commit()
        return s
    return _make


import fakeredis
import fakeredis.aioredis
from routine_compliance.infra import redis_client


@pytest.fixture(autouse=True)
def mock_redis(monkeypatch):
    server = fakeredis.FakeServer()
    # Fake clients sharing one server
    async_redis = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    sync_redis = fakeredis.FakeRedis(server=server, decode_responses=True)

    redis_client._redis_async = async_redis
    redis_client._redis_sync = sync_redis

    yield sync_redis

    redis_client._redis_async = None
    redis_client._redis_sync = None
