import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone

# Configure the app before it is imported
_TMP_DIR = tempfile.mkdtemp(prefix="promo_engine_tests_")
DEFAULT_TEST_DATABASE_URL = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", DEFAULT_TEST_DATABASE_URL)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["PROMO_CODE_SECRET"] = "test-secret"
os.environ.setdefault("APP_ENV", "test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from promo_engine.main import app
from promo_engine.database import get_db, Base, engine as app_engine
from promo_engine.schemas.promotion_code import CodeGenerationRequest
from promo_engine.services.rate_limiter import AttemptLimiter

TEST_SECRET = "test-secret"

connect_args = {"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(TEST_DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Override the app's DB dependency to use the test engine/session
def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


def pytest_sessionfinish(session, exitstatus):
    # release SQLite file handles before removing the scratch directory
    engine.dispose()
    app_engine.dispose()
    shutil.rmtree(_TMP_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def setup_database():
    """Fresh schema for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def admin_headers():
    return {"X-User-Id": "admin-1", "X-User-Role": "admin"}


def user_headers(user_id):
    return {"X-User-Id": user_id}


def make_request(now=None, **overrides):
    now = now or datetime.now(timezone.utc)
    data = {
        "event_period": {
            "start_date": (now - timedelta(days=1)).isoformat(),
            "end_date": (now + timedelta(days=30)).isoformat(),
        },
        "benefit": {
            "type": "subscription_upgrade",
            "plan_id": "voca_unlimited",
            "is_permanent": False,
            "duration_days": 30,
        },
        "max_uses": 100,
        "max_uses_per_user": 1,
        "description": "Spring campaign",
        "count": 1,
    }
    data.update(overrides)
    return data


def build_request(now=None, **overrides) -> CodeGenerationRequest:
    return CodeGenerationRequest(**make_request(now, **overrides))


@pytest.fixture
def relaxed_limiter():
    # enough headroom for tests that validate many times as one user
    return AttemptLimiter(max_attempts=1000)
