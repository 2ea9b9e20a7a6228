"""Shared FastAPI dependency factories."""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from authcore.db import Principal, get_db
from authcore.domain.exceptions import UnauthorizedError
from authcore.repositories import PrincipalRepository
from authcore.services import CeremonyOrchestrator, LoginSessionService, RelatedOriginService

# Login session ids issued by /passkeys/authentication/verify
session_bearer = HTTPBearer(auto_error=False)


def get_session(db: Session = Depends(get_db)) -> Session:
    """Expose the SQLAlchemy session (alias for clarity)."""
    return db


def get_ceremony_orchestrator(session: Session = Depends(get_session)) -> CeremonyOrchestrator:
    return CeremonyOrchestrator(session)


def get_related_origin_service(session: Session = Depends(get_session)) -> RelatedOriginService:
    return RelatedOriginService(session)


def get_login_session_service(session: Session = Depends(get_session)) -> LoginSessionService:
    return LoginSessionService(session)


def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(session_bearer),
    sessions: LoginSessionService = Depends(get_login_session_service),
    session: Session = Depends(get_session),
) -> Optional[Principal]:
    """Resolve the bearer login session to its principal.

    Returns ``None`` when no bearer token is sent. A token that does not
    resolve to a live session and an existing principal is rejected.
    """
    if credentials is None:
        return None
    login = sessions.get(credentials.credentials)
    if login is None or not login.account_id:
        raise UnauthorizedError("Invalid or expired session")
    principal = PrincipalRepository(session).get_by_id(login.account_id)
    if principal is None:
        raise UnauthorizedError("Invalid or expired session")
    return principal


def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    if principal is None:
        raise UnauthorizedError("Not authenticated")
    return principal
