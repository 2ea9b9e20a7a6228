"""Protocol artifact storage (sessions, codes, tokens, grants).

One table holds every artifact kind, keyed by ``(type, id)``. Expiry is
lazy: rows past ``expires_at`` are invisible to every read path and are
only hard-deleted by :meth:`ProtocolArtifactStore.purge_expired`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, or_, update
from sqlalchemy.orm import Query, Session

from authcore.core.audit import AuditAction, AuditOutcome, audit_log
from authcore.core.logging import get_logger
from authcore.core.metrics import record_grant_revocation, record_purge
from authcore.core.time import Clock, expires_in, utcnow
from authcore.db import ProtocolArtifact, RevokedGrant
from authcore.db.utils import upsert_row
from authcore.domain.artifacts import ArtifactPayload, ArtifactType, payload_model
from authcore.domain.exceptions import ArtifactNotFound, GrantRevokedError, ValidationError

logger = get_logger(__name__)

PayloadInput = Union[ArtifactPayload, dict[str, Any]]


class ProtocolArtifactStore:
    """Generic expiring, consumable artifact store."""

    def __init__(self, session: Session, clock: Clock = utcnow) -> None:
        self.session = session
        self.clock = clock

    def adapter(self, artifact_type: ArtifactType | str) -> "ArtifactAdapter":
        """Return a view of this store bound to one artifact kind."""
        return ArtifactAdapter(self, ArtifactType(artifact_type))

    # Writes

    def upsert(
        self,
        artifact_id: str,
        artifact_type: ArtifactType | str,
        payload: PayloadInput,
        ttl_seconds: Optional[float] = None,
    ) -> ArtifactPayload:
        """Create or replace the artifact stored under ``(type, id)``.

        Raises:
            ValidationError: The payload does not fit the kind's model.
            GrantRevokedError: The payload belongs to a revoked grant.
        """
        artifact_type = ArtifactType(artifact_type)
        model = self._validate(artifact_type, payload)

        grant_id = model.grant_id
        guarded = [grant_id] if grant_id else []
        if artifact_type == ArtifactType.GRANT:
            guarded.append(artifact_id)
        for guarded_id in guarded:
            self._ensure_not_revoked(guarded_id)

        upsert_row(
            self.session,
            ProtocolArtifact,
            {
                "type": artifact_type.value,
                "id": artifact_id,
                "payload": model.to_storage(),
                "uid": model.uid,
                "user_code": model.user_code,
                "grant_id": grant_id,
                "expires_at": expires_in(self.clock(), ttl_seconds),
            },
            key_columns=["type", "id"],
        )
        self.session.commit()

        # A revocation may have committed its marker and run its delete after
        # the check above; once committed, the marker is visible here.
        for guarded_id in guarded:
            if self._is_revoked(guarded_id):
                self.destroy(artifact_id, artifact_type)
                logger.warning(
                    "Discarded artifact written under a grant revoked concurrently",
                    extra={"artifact_type": artifact_type.value, "grant_id": guarded_id},
                )
                raise GrantRevokedError(f"Grant {guarded_id} has been revoked")

        logger.debug(
            "Stored artifact",
            extra={"artifact_type": artifact_type.value, "ttl_seconds": ttl_seconds},
        )
        return model

    def consume(self, artifact_id: str, artifact_type: ArtifactType | str) -> None:
        """Mark a live artifact as consumed; the row is kept.

        Consuming twice keeps the first consumption time.

        Raises:
            ArtifactNotFound: Absent or expired.
        """
        now = self.clock()
        result = self.session.execute(
            update(ProtocolArtifact)
            .where(
                ProtocolArtifact.type == ArtifactType(artifact_type).value,
                ProtocolArtifact.id == artifact_id,
                self._unexpired(now),
            )
            .values(consumed_at=func.coalesce(ProtocolArtifact.consumed_at, now))
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        if result.rowcount == 0:
            raise ArtifactNotFound(f"{ArtifactType(artifact_type).value} not found")

    def destroy(self, artifact_id: str, artifact_type: ArtifactType | str) -> None:
        """Delete an artifact; deleting a missing one is not an error."""
        self.session.execute(
            delete(ProtocolArtifact)
            .where(
                ProtocolArtifact.type == ArtifactType(artifact_type).value,
                ProtocolArtifact.id == artifact_id,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()

    def revoke_by_grant_id(self, grant_id: str) -> int:
        """Delete every artifact, of any kind, issued under ``grant_id``.

        The revocation marker is committed before the bulk delete. Writers
        check the marker before and after their own commit, so an artifact
        written while this runs is discarded by its writer.
        Returns the number of deleted artifacts.
        """
        upsert_row(
            self.session,
            RevokedGrant,
            {"grant_id": grant_id, "revoked_at": self.clock()},
            key_columns=["grant_id"],
        )
        self.session.commit()

        result = self.session.execute(
            delete(ProtocolArtifact)
            .where(ProtocolArtifact.grant_id == grant_id)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        deleted = result.rowcount

        record_grant_revocation(deleted)
        audit_log(
            AuditAction.GRANT_REVOKE,
            AuditOutcome.SUCCESS,
            resource_type="grant",
            resource_id=grant_id,
            details={"deleted": deleted},
        )
        logger.info("Revoked grant", extra={"grant_id": grant_id, "deleted": deleted})
        return deleted

    def purge_expired(self) -> int:
        """Hard-delete expired rows. Reads already ignore them."""
        result = self.session.execute(
            delete(ProtocolArtifact)
            .where(
                ProtocolArtifact.expires_at.is_not(None),
                ProtocolArtifact.expires_at <= self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        record_purge("artifacts", result.rowcount)
        return result.rowcount

    # Reads

    def find(self, artifact_id: str, artifact_type: ArtifactType | str) -> Optional[ArtifactPayload]:
        artifact_type = ArtifactType(artifact_type)
        row = self._live(artifact_type).filter(ProtocolArtifact.id == artifact_id).first()
        return self._to_payload(artifact_type, row)

    def find_by_uid(self, uid: str, artifact_type: ArtifactType | str) -> Optional[ArtifactPayload]:
        artifact_type = ArtifactType(artifact_type)
        row = self._live(artifact_type).filter(ProtocolArtifact.uid == uid).first()
        return self._to_payload(artifact_type, row)

    def find_by_user_code(
        self, user_code: str, artifact_type: ArtifactType | str
    ) -> Optional[ArtifactPayload]:
        artifact_type = ArtifactType(artifact_type)
        row = self._live(artifact_type).filter(ProtocolArtifact.user_code == user_code).first()
        return self._to_payload(artifact_type, row)

    # Internals

    @staticmethod
    def _unexpired(now: datetime):
        return or_(ProtocolArtifact.expires_at.is_(None), ProtocolArtifact.expires_at > now)

    def _live(self, artifact_type: ArtifactType) -> Query:
        return (
            self.session.query(ProtocolArtifact)
            .populate_existing()
            .filter(
                ProtocolArtifact.type == artifact_type.value,
                self._unexpired(self.clock()),
            )
        )

    def _validate(self, artifact_type: ArtifactType, payload: PayloadInput) -> ArtifactPayload:
        model = payload_model(artifact_type)
        if isinstance(payload, ArtifactPayload):
            payload = payload.model_dump(by_alias=True, exclude_none=True)
        try:
            return model.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid {artifact_type.value} payload: {exc.error_count()} error(s)"
            ) from exc

    def _is_revoked(self, grant_id: str) -> bool:
        return self.session.get(RevokedGrant, grant_id, populate_existing=True) is not None

    def _ensure_not_revoked(self, grant_id: str) -> None:
        if self._is_revoked(grant_id):
            raise GrantRevokedError(f"Grant {grant_id} has been revoked")

    @staticmethod
    def _to_payload(
        artifact_type: ArtifactType, row: Optional[ProtocolArtifact]
    ) -> Optional[ArtifactPayload]:
        if row is None:
            return None
        data = dict(row.payload)
        data["consumed_at"] = row.consumed_at
        return payload_model(artifact_type).model_validate(data)


class ArtifactAdapter:
    """Store operations bound to a single artifact kind."""

    def __init__(self, store: ProtocolArtifactStore, artifact_type: ArtifactType) -> None:
        self.store = store
        self.artifact_type = artifact_type

    def upsert(
        self, artifact_id: str, payload: PayloadInput, ttl_seconds: Optional[float] = None
    ) -> ArtifactPayload:
        return self.store.upsert(artifact_id, self.artifact_type, payload, ttl_seconds)

    def find(self, artifact_id: str) -> Optional[ArtifactPayload]:
        return self.store.find(artifact_id, self.artifact_type)

    def find_by_uid(self, uid: str) -> Optional[ArtifactPayload]:
        return self.store.find_by_uid(uid, self.artifact_type)

    def find_by_user_code(self, user_code: str) -> Optional[ArtifactPayload]:
        return self.store.find_by_user_code(user_code, self.artifact_type)

    def consume(self, artifact_id: str) -> None:
        self.store.consume(artifact_id, self.artifact_type)

    def destroy(self, artifact_id: str) -> None:
        self.store.destroy(artifact_id, self.artifact_type)

    def revoke_by_grant_id(self, grant_id: str) -> int:
        return self.store.revoke_by_grant_id(grant_id)
