"""
Pytest configuration for tracker tests.

Environment variables are set at module level (not in pytest_configure)
because they need to be in place before any tracker module is imported
during collection: the rate limiter is built at import time.
"""

import os

# Disable rate limiting and keep bcrypt cheap BEFORE any modules are imported
os.environ["ENV"] = "TEST"
os.environ["DISABLE_RATE_LIMITS"] = "1"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SESSION_SECRET_KEY"] = "test-session-secret"

import pytest
from fastapi.testclient import TestClient

from tracker.app.db.migrate import ensure_schema
from tracker.app.models.identity import RequestContext, superuser_identity
from tracker.app.models.protocol import PartnerCreate, UserCreate
from tracker.app.services.events import RecordingSink
from tracker.app.services.partners import create_partner
from tracker.app.services.users import create_user


@pytest.fixture(scope="function")
def test_db(tmp_path, monkeypatch):
    """Point the tracker at a fresh, migrated SQLite file for this test."""
    db_path = tmp_path / "tracker.db"
    monkeypatch.setenv("TRACKER_DB_PATH", str(db_path))
    monkeypatch.setenv("ERROR_LOG_PATH", str(tmp_path / "error.log"))
    ensure_schema()
    yield db_path


@pytest.fixture(scope="function")
def client(test_db):
    """Test client running the app lifespan against the temporary database."""
    from tracker.app.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_ctx():
    return RequestContext(
        identity=superuser_identity("admin"),
        ip_address="127.0.0.1",
        user_agent="pytest",
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def partner(test_db, admin_ctx):
    """Active partner RS01 in DKI with a zeroed ledger."""
    return create_partner(
        PartnerCreate(name="RS Sehat", type="rumah_sakit", code="RS01", province_code="DKI"),
        admin_ctx,
    )


@pytest.fixture
def make_user(test_db, admin_ctx):
    """Factory creating a stored user with the given role."""

    def _make(username: str, role: str, password: str = "secret123") -> int:
        return create_user(
            UserCreate(
                username=username,
                email=f"{username}@tracker.id",
                full_name=username.title(),
                role=role,
                password=password,
                confirm_password=password,
            ),
            admin_ctx,
        )

    return _make

