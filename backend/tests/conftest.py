"""
Shared fixtures.

Every test gets its own in-memory SQLite database. The app's ``get_db``
dependency and the WebSocket session factory are overridden to use it too; the
application engine (used only by the admin bootstrap and rate-limit audit
writes) points at a throwaway file under a temp directory.
"""
from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_TMP_DIR = tempfile.mkdtemp(prefix="vigora-tests-")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATA_DIR", _TMP_DIR)
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR}/app.db")
os.environ.setdefault("EMAIL_ENABLED", "false")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from auth.utils import create_access_token, hash_password  # noqa: E402
from db.database import Base, get_db, get_session_factory  # noqa: E402
from db.models import ClientProfile, TrainerProfile, User  # noqa: E402
from main import app  # noqa: E402
from services.rate_limit_service import limiter  # noqa: E402
from utils.datetime_utils import utcnow  # noqa: E402

# One cheap hash reused by every fixture account.
TEST_PASSWORD = "secret123"
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _fk_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_session_factory, None)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = "CLIENT", *, first_name: str = "Test", last_name: str = "", active: bool = True) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            username=f"{role.lower()}{n}",
            email=f"{role.lower()}{n}@example.com",
            password_hash=_TEST_PASSWORD_HASH,
            role=role,
            first_name=first_name,
            last_name=last_name or f"User{n}",
            is_active=active,
            token_version=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_trainer(db, make_user):
    def _make(review_status: str = "APPROVED") -> TrainerProfile:
        user = make_user("TRAINER" if review_status == "APPROVED" else "CLIENT")
        profile = TrainerProfile(
            user_id=user.id,
            specialties='["strength"]',
            document_urls="[]",
            review_status=review_status,
            validated_by_admin=review_status == "APPROVED",
            validated_at=utcnow() if review_status == "APPROVED" else None,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return _make


@pytest.fixture
def make_client(db, make_user):
    def _make(trainer: TrainerProfile | None = None) -> ClientProfile:
        user = make_user("CLIENT")
        profile = ClientProfile(user_id=user.id, trainer_id=trainer.id if trainer else None)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return _make


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def headers():
    return auth_headers
