"""Tests for storage hygiene tasks."""

from datetime import UTC, datetime

from authcore.db import ProtocolArtifact, WebAuthnChallenge
from authcore.domain.artifacts import ArtifactType
from authcore.jobs import tasks
from authcore.services import DatabaseChallengeStore, ProtocolArtifactStore

LONG_AGO = datetime(2020, 1, 1, tzinfo=UTC)


def test_purge_expired_artifacts(db_session, monkeypatch):
    monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)
    past = ProtocolArtifactStore(db_session, clock=lambda: LONG_AGO)
    past.upsert("old", ArtifactType.ACCESS_TOKEN, {}, ttl_seconds=60)
    ProtocolArtifactStore(db_session).upsert("live", ArtifactType.ACCESS_TOKEN, {}, ttl_seconds=60)

    assert tasks.purge_expired_artifacts() == 1

    assert [row.id for row in db_session.query(ProtocolArtifact).all()] == ["live"]


def test_purge_expired_challenges(db_session, monkeypatch):
    monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)
    monkeypatch.setattr(tasks.settings, "webauthn_challenge_backend", "database")
    DatabaseChallengeStore(db_session, ttl_seconds=1, clock=lambda: LONG_AGO).issue("old")
    DatabaseChallengeStore(db_session).issue("live")

    assert tasks.purge_expired_challenges() == 1

    assert db_session.query(WebAuthnChallenge).count() == 1


def test_purge_challenges_skipped_for_redis(monkeypatch):
    monkeypatch.setattr(tasks.settings, "webauthn_challenge_backend", "redis")

    def fail():
        raise AssertionError("no database session expected")

    monkeypatch.setattr(tasks, "SessionLocal", fail)

    assert tasks.purge_expired_challenges() == 0
