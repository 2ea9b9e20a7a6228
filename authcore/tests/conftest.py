"""Test configuration and fixtures."""

import os
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["TESTING"] = "true"  # Disable rate limiting in tests
os.environ.setdefault("WEBAUTHN_RP_ID", "localhost")
os.environ.setdefault("WEBAUTHN_ORIGINS", "https://localhost,http://localhost:3000")
os.environ.setdefault("WEBAUTHN_CHALLENGE_BACKEND", "database")

from authcore.db import Base, get_db  # noqa: E402
from authcore.domain.webauthn import PrincipalKind  # noqa: E402
from authcore.main import app  # noqa: E402 - must set env vars before importing
from authcore.repositories import PrincipalRepository  # noqa: E402
from authcore.services import (  # noqa: E402
    CeremonyOrchestrator,
    ConsentRegistry,
    DatabaseChallengeStore,
    ProtocolArtifactStore,
)
from authcore.tests.helpers.software_authenticator import SoftwareAuthenticator  # noqa: E402

ORIGIN = "https://localhost"

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """Deterministic clock; ``advance`` replaces sleeping in expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    """Create a test client with overridden database dependency."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def admin(db_session):
    """Principal ``admin-1`` with no credentials."""
    return PrincipalRepository(db_session).create(
        email="admin@example.com",
        display_name="Admin One",
        kind=PrincipalKind.ADMIN,
        principal_id="admin-1",
    )


@pytest.fixture
def customer(db_session):
    return PrincipalRepository(db_session).create(
        email="Customer@Example.com",
        display_name="Customer",
        principal_id="customer-1",
    )


@pytest.fixture
def challenge_store(db_session, clock):
    return DatabaseChallengeStore(db_session, clock=clock)


@pytest.fixture
def orchestrator(db_session, challenge_store, clock):
    return CeremonyOrchestrator(db_session, challenge_store=challenge_store, clock=clock)


@pytest.fixture
def artifact_store(db_session, clock):
    return ProtocolArtifactStore(db_session, clock=clock)


@pytest.fixture
def consent_registry(db_session, artifact_store, clock):
    return ConsentRegistry(db_session, artifact_store=artifact_store, clock=clock)


@pytest.fixture
def authenticator():
    return SoftwareAuthenticator()


@pytest.fixture
def registered(orchestrator, admin, authenticator):
    """``admin-1`` with one passkey held by ``authenticator``."""
    options = orchestrator.begin_registration(admin.id)
    response = authenticator.make_credential(options.public_key, ORIGIN)
    result = orchestrator.complete_registration(admin.id, response)
    assert result.verified
    return result.credential
