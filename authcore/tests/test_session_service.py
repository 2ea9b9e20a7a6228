"""Tests for login sessions."""

from authcore.core.config import settings
from authcore.domain.artifacts import SessionPayload
from authcore.services import LoginSessionService


def test_start_persists_session_artifact(db_session, admin, clock):
    service = LoginSessionService(db_session, clock=clock)

    login = service.start(admin)

    stored = service.get(login.session_id)
    assert isinstance(stored, SessionPayload)
    assert stored.account_id == "admin-1"
    assert stored.uid == login.uid
    assert stored.amr == ["webauthn"]
    assert stored.login_ts == int(clock().timestamp())


def test_session_expires_after_ttl(db_session, admin, clock):
    service = LoginSessionService(db_session, clock=clock)
    login = service.start(admin)

    clock.advance(settings.session_ttl_seconds)

    assert service.get(login.session_id) is None


def test_end_session(db_session, admin, clock):
    service = LoginSessionService(db_session, clock=clock)
    login = service.start(admin)

    service.end(login.session_id)

    assert service.get(login.session_id) is None
