"""Celery tasks for storage hygiene.

Expired rows are already invisible to every read path; these tasks only
reclaim space.
"""

from __future__ import annotations

from celery import shared_task

from authcore.core.config import settings
from authcore.core.logging import get_logger
from authcore.core.metrics import record_purge
from authcore.db import SessionLocal
from authcore.services.artifact_store import ProtocolArtifactStore
from authcore.services.challenge_store import DatabaseChallengeStore

logger = get_logger(__name__)


@shared_task(name="purge_expired_artifacts")
def purge_expired_artifacts() -> int:
    db = SessionLocal()
    try:
        deleted = ProtocolArtifactStore(db).purge_expired()
    finally:
        db.close()
    logger.info("Purged expired artifacts", extra={"deleted": deleted})
    return deleted


@shared_task(name="purge_expired_challenges")
def purge_expired_challenges() -> int:
    """Purge expired database challenges; Redis expires its own keys."""
    if settings.webauthn_challenge_backend != "database":
        return 0
    db = SessionLocal()
    try:
        deleted = DatabaseChallengeStore(db).purge_expired()
    finally:
        db.close()
    record_purge("challenges", deleted)
    logger.info("Purged expired challenges", extra={"deleted": deleted})
    return deleted
