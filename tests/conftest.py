# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from datetime import timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from skul_relay.api.v1.dependencies import get_notification_dispatcher
from skul_relay.core.security import create_access_token
from skul_relay.db.session import Base
from skul_relay.db.session import get_db as app_get_session
from skul_relay.db.time import utcnow
from skul_relay.main import app as fastapi_app
from skul_relay.models import Conversation, Profile, TutorProfile
from skul_relay.models.user import USER_TYPE_STUDENT, USER_TYPE_TUTOR
from skul_relay.services.notifications import NotificationContract

TEST_DB_URL = "sqlite://"


class RecordingDispatcher:
    """Stands in for the notification dispatcher and keeps every contract."""

    def __init__(self) -> None:
        self.contracts: list[NotificationContract] = []

    async def dispatch(self, contract: NotificationContract) -> None:
        self.contracts.append(contract)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture(autouse=True)
def dispatcher(app: FastAPI) -> Iterator[RecordingDispatcher]:
    """Capture notification contracts instead of delivering them."""
    recording = RecordingDispatcher()
    app.dependency_overrides[get_notification_dispatcher] = lambda: recording
    try:
        yield recording
    finally:
        app.dependency_overrides.pop(get_notification_dispatcher, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def student(db_session: Session) -> Profile:
    """Create a student profile with an email address and no avatar."""
    profile = Profile(
        full_name="Amina Student",
        email="amina@example.org",
        user_type=USER_TYPE_STUDENT,
    )
    db_session.add(profile)
    db_session.flush()
    return profile


@pytest.fixture()
def tutor(db_session: Session) -> Profile:
    """Create a tutor whose photo lives only on the tutor profile."""
    profile = Profile(
        full_name="Paul Tutor",
        email="paul@example.org",
        user_type=USER_TYPE_TUTOR,
    )
    profile.tutor_profile = TutorProfile(profile_photo_url="https://cdn.example.org/paul.png")
    db_session.add(profile)
    db_session.flush()
    return profile


@pytest.fixture()
def admin(db_session: Session) -> Profile:
    profile = Profile(full_name="Moderator", email="mod@example.org", is_admin=True)
    db_session.add(profile)
    db_session.flush()
    return profile


@pytest.fixture()
def outsider(db_session: Session) -> Profile:
    profile = Profile(full_name="Not Invited", user_type=USER_TYPE_STUDENT)
    db_session.add(profile)
    db_session.flush()
    return profile


@pytest.fixture()
def conversation(db_session: Session, student: Profile, tutor: Profile) -> Conversation:
    """Create an active conversation that expires in a week."""
    conversation = Conversation(
        student_id=student.id,
        tutor_id=tutor.id,
        expires_at=utcnow() + timedelta(days=7),
    )
    db_session.add(conversation)
    db_session.flush()
    return conversation


def bearer(profile: Profile) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(profile.id)}"}


@pytest.fixture()
def student_headers(student: Profile) -> dict[str, str]:
    """Return authorization headers for the student."""
    return bearer(student)


@pytest.fixture()
def tutor_headers(tutor: Profile) -> dict[str, str]:
    """Return authorization headers for the tutor."""
    return bearer(tutor)


@pytest.fixture()
def admin_headers(admin: Profile) -> dict[str, str]:
    return bearer(admin)
