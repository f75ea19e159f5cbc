"""Shared fixtures.

Environment is set before anything from keepintouch is imported, because
settings and the engine are built at import time.
"""

import os
import tempfile

os.environ["ENVIRONMENT"] = "test"
os.environ["ACCESS_TOKEN_SECRET"] = "test-access-secret-0123456789abcdefghijklmnop"
os.environ["REFRESH_TOKEN_SECRET"] = "test-refresh-secret-0123456789abcdefghijklmno"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUN_TOKEN_CLEANUP"] = "false"
os.environ["DB_INIT_MODE"] = "off"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["LOG_FILE"] = os.path.join(tempfile.mkdtemp(prefix="keepintouch-tests-"), "app.log")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from keepintouch.core.database import Base, SessionLocal
from keepintouch.main import app
from keepintouch.schemas.user import UserCreate, UserRole
from keepintouch.services.email_service import EmailService, get_email_service
from keepintouch.services.user_service import user_service

_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
# Every SessionLocal() in the app (routes, /health, cleanup worker) now uses
# the single shared in-memory connection.
SessionLocal.configure(bind=_engine)


class RecordingEmailService(EmailService):
    """Captures reset emails instead of sending them"""

    def __init__(self, outbox):
        super().__init__()
        self.outbox = outbox
        self.fail = False

    def send_password_reset_email(self, user, reset_url):
        if self.fail:
            raise OSError("smtp unavailable")
        self.outbox.append({"to": user.email, "url": reset_url})


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=_engine)
    yield
    Base.metadata.drop_all(bind=_engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def email_outbox():
    return []


@pytest.fixture
def email_service(email_outbox):
    return RecordingEmailService(email_outbox)


@pytest.fixture
def client(email_service):
    app.dependency_overrides[get_email_service] = lambda: email_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(username="alice", email=None, password="secret123", name="Alice Liddell", role=UserRole.USER):
        return user_service.create_user(
            db,
            UserCreate(
                username=username,
                name=name,
                email=email or f"{username}@example.com",
                password=password,
                role=role,
            ),
        )
    return _make_user
