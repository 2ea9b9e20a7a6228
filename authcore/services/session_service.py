"""Login sessions issued after a verified passkey assertion."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from authcore.core.audit import AuditAction, AuditContext, AuditOutcome, audit_log
from authcore.core.config import settings
from authcore.core.time import Clock, expires_in, utcnow
from authcore.db import Principal
from authcore.domain.artifacts import ArtifactType, SessionPayload
from authcore.services.artifact_store import ProtocolArtifactStore


@dataclass
class LoginSession:
    session_id: str
    uid: str
    principal_id: str
    expires_at: Optional[datetime]


class LoginSessionService:
    """Persists ``Session`` artifacts through the protocol artifact store."""

    def __init__(self, session: Session, clock: Clock = utcnow) -> None:
        self.clock = clock
        self.sessions = ProtocolArtifactStore(session, clock=clock).adapter(ArtifactType.SESSION)

    def start(
        self,
        principal: Principal,
        amr: Optional[list[str]] = None,
        *,
        context: Optional[AuditContext] = None,
    ) -> LoginSession:
        now = self.clock()
        session_id = secrets.token_urlsafe(32)
        payload = SessionPayload(
            uid=secrets.token_urlsafe(16),
            account_id=principal.id,
            login_ts=int(now.timestamp()),
            amr=amr or ["webauthn"],
            kind=ArtifactType.SESSION.value,
            jti=session_id,
        )
        self.sessions.upsert(session_id, payload, ttl_seconds=settings.session_ttl_seconds)

        audit_log(
            AuditAction.SESSION_CREATE,
            AuditOutcome.SUCCESS,
            context=context,
            principal_id=principal.id,
            email=principal.email,
            resource_type="session",
        )
        return LoginSession(
            session_id=session_id,
            uid=payload.uid,
            principal_id=principal.id,
            expires_at=expires_in(now, settings.session_ttl_seconds),
        )

    def get(self, session_id: str) -> Optional[SessionPayload]:
        return self.sessions.find(session_id)

    def end(self, session_id: str) -> None:
        self.sessions.destroy(session_id)
