"""Consent registry gating delegated access to a subject's resources."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authcore.core.audit import AuditAction, AuditOutcome, audit_log
from authcore.core.logging import get_logger
from authcore.core.metrics import record_consent_decision
from authcore.core.time import Clock, expires_in, is_expired, utcnow
from authcore.db import Consent
from authcore.domain.exceptions import (
    ConflictError,
    ConsentExpiredOrRevoked,
    ForbiddenError,
    ValidationError,
)
from authcore.repositories.consent_repository import ConsentRepository
from authcore.services.artifact_store import ProtocolArtifactStore

logger = get_logger(__name__)


def is_consent_active(consent: Consent, now: datetime) -> bool:
    """Active iff not revoked, not superseded and not expired."""
    return (
        consent.revoked_at is None
        and consent.superseded_at is None
        and not is_expired(consent.expires_at, now)
    )


class ConsentRegistry:
    """Records, checks and revokes consents per (subject, client) pair.

    A new grant supersedes the current record instead of editing it, so the
    full history of what was authorized, and when, is retained.
    """

    def __init__(
        self,
        session: Session,
        artifact_store: Optional[ProtocolArtifactStore] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.session = session
        self.repo = ConsentRepository(session)
        self.clock = clock
        self.artifact_store = artifact_store or ProtocolArtifactStore(session, clock=clock)

    def grant(
        self,
        subject_id: str,
        client_id: str,
        scopes: Iterable[str],
        resource_ids: Iterable[str],
        ttl_seconds: Optional[float] = None,
        grant_id: Optional[str] = None,
    ) -> Consent:
        """Record a new consent, superseding the current one for the pair.

        Args:
            ttl_seconds: Lifetime of the consent; ``None`` means until revoked.

        Raises:
            ValidationError: ``ttl_seconds`` is zero or negative.
            ConflictError: ``grant_id`` already backs another consent, or a
                concurrent grant for the same pair won the race.
        """
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValidationError("Consent ttl_seconds must be positive")
        now = self.clock()
        current = self.repo.get_current(subject_id, client_id)
        if current is not None:
            current.superseded_at = now
            self.repo.flush()

        consent = Consent(
            subject_id=subject_id,
            client_id=client_id,
            scopes=sorted(set(scopes)),
            resource_ids=sorted(set(resource_ids)),
            grant_id=grant_id,
            issued_at=now,
            expires_at=expires_in(now, ttl_seconds),
        )
        self.repo.add(consent)
        try:
            self.repo.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("Consent could not be recorded") from exc
        self.repo.refresh(consent)

        audit_log(
            AuditAction.CONSENT_GRANT,
            AuditOutcome.SUCCESS,
            principal_id=subject_id,
            client_id=client_id,
            resource_type="consent",
            resource_id=consent.id,
            details={"scopes": consent.scopes, "resource_count": len(consent.resource_ids)},
        )
        return consent

    def active(self, subject_id: str, client_id: str) -> Optional[Consent]:
        current = self.repo.get_current(subject_id, client_id)
        if current is None or not is_consent_active(current, self.clock()):
            return None
        return current

    def is_resource_authorized(self, subject_id: str, client_id: str, resource_id: str) -> bool:
        consent = self.active(subject_id, client_id)
        allowed = consent is not None and resource_id in consent.resource_ids
        record_consent_decision("allowed" if allowed else "denied")
        return allowed

    def authorized_scopes(self, subject_id: str, client_id: str) -> set[str]:
        """Scopes of the active consent; empty once expired or revoked."""
        consent = self.active(subject_id, client_id)
        return set(consent.scopes) if consent else set()

    def require_access(
        self,
        subject_id: str,
        client_id: str,
        resource_id: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> Consent:
        """Return the active consent or raise.

        Raises:
            ConsentExpiredOrRevoked: No active consent for the pair.
            ForbiddenError: The consent does not cover ``resource_id``/``scope``.
        """
        consent = self.active(subject_id, client_id)
        if consent is None:
            record_consent_decision("no_consent")
            self._audit_denied(subject_id, client_id, resource_id, "no_active_consent")
            raise ConsentExpiredOrRevoked()

        if resource_id is not None and resource_id not in consent.resource_ids:
            record_consent_decision("denied")
            self._audit_denied(subject_id, client_id, resource_id, "resource_not_consented")
            raise ForbiddenError("Resource is not covered by consent")
        if scope is not None and scope not in consent.scopes:
            record_consent_decision("denied")
            self._audit_denied(subject_id, client_id, resource_id, "scope_not_consented")
            raise ForbiddenError("Scope is not covered by consent")

        record_consent_decision("allowed")
        return consent

    def revoke(self, subject_id: str, client_id: str) -> Optional[Consent]:
        """Soft-revoke the active consent; no-op when there is none.

        Tokens issued under the consent's grant are revoked with it.
        """
        consent = self.active(subject_id, client_id)
        if consent is None:
            return None

        consent.revoked_at = self.clock()
        self.repo.commit()
        self.repo.refresh(consent)

        deleted = 0
        if consent.grant_id:
            deleted = self.artifact_store.revoke_by_grant_id(consent.grant_id)

        audit_log(
            AuditAction.CONSENT_REVOKE,
            AuditOutcome.SUCCESS,
            principal_id=subject_id,
            client_id=client_id,
            resource_type="consent",
            resource_id=consent.id,
            details={"grant_id": consent.grant_id, "revoked_artifacts": deleted},
        )
        return consent

    def history(self, subject_id: str, client_id: str) -> Sequence[Consent]:
        return self.repo.list_history(subject_id, client_id)

    def find_by_grant_id(self, grant_id: str) -> Optional[Consent]:
        return self.repo.get_by_grant_id(grant_id)

    def _audit_denied(
        self, subject_id: str, client_id: str, resource_id: Optional[str], reason: str
    ) -> None:
        audit_log(
            AuditAction.ACCESS_DENIED,
            AuditOutcome.DENIED,
            principal_id=subject_id,
            client_id=client_id,
            resource_type="resource",
            resource_id=resource_id,
            error_kind=reason,
        )
