"""Passkey ceremony endpoints.

Registration and credential management act on the principal of the bearer
login session. The only unauthenticated registration is enrolment of a
principal's first passkey.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from authcore.core import settings
from authcore.core.audit import create_audit_context_from_request
from authcore.core.logging import get_logger
from authcore.db import Principal
from authcore.dependencies import (
    get_ceremony_orchestrator,
    get_current_principal,
    get_login_session_service,
    get_optional_principal,
)
from authcore.domain.exceptions import CeremonyError, ForbiddenError, UnauthorizedError
from authcore.schemas.webauthn import (
    AuthenticationOptionsRequest,
    AuthenticationVerifyRequest,
    AuthenticationVerifyResponse,
    CeremonyOptionsResponse,
    CredentialRead,
    RegistrationOptionsRequest,
    RegistrationVerifyRequest,
    RegistrationVerifyResponse,
)
from authcore.services import CeremonyOrchestrator, LoginSessionService

logger = get_logger(__name__)

router = APIRouter(prefix="/passkeys", tags=["passkeys"])

# Rate limiter for ceremony endpoints - disabled during testing
limiter = Limiter(key_func=get_remote_address, enabled=not settings.testing)


def _registration_principal_id(
    principal: Optional[Principal],
    requested_id: Optional[str],
    orchestrator: CeremonyOrchestrator,
) -> str:
    """Pick the principal a registration ceremony enrols a passkey for.

    Args:
        principal: Principal of the bearer session, if any.
        requested_id: ``principal_id`` from the request body.
        orchestrator: Used to check for existing passkeys.

    Returns:
        The session principal's id, or ``requested_id`` when an anonymous
        caller enrols the first passkey of a principal that has none.

    Raises:
        ForbiddenError: A signed-in caller names another principal.
        UnauthorizedError: An anonymous caller targets a principal that
            already has a passkey, or names no principal.
    """
    if principal is not None:
        if requested_id and requested_id != principal.id:
            logger.warning(
                "Registration for another principal refused",
                extra={"principal_id": principal.id, "target_principal_id": requested_id},
            )
            raise ForbiddenError("Cannot register a passkey for another principal")
        return principal.id

    if not requested_id:
        raise UnauthorizedError("Not authenticated")
    if orchestrator.list_credentials(requested_id):
        raise UnauthorizedError("Sign in with an existing passkey to add another")
    return requested_id


def _ensure_owner(principal: Principal, principal_id: str) -> None:
    if principal.id != principal_id:
        raise ForbiddenError("Passkeys of another principal are not accessible")


@router.post("/registration/options", response_model=CeremonyOptionsResponse)
@limiter.limit("10/minute")
def registration_options(
    request: Request,
    payload: RegistrationOptionsRequest,
    principal: Optional[Principal] = Depends(get_optional_principal),
    orchestrator: CeremonyOrchestrator = Depends(get_ceremony_orchestrator),
) -> CeremonyOptionsResponse:
    principal_id = _registration_principal_id(principal, payload.principal_id, orchestrator)
    options = orchestrator.begin_registration(principal_id)
    return CeremonyOptionsResponse(public_key=options.public_key)


@router.post("/registration/verify", response_model=RegistrationVerifyResponse)
@limiter.limit("10/minute")
def registration_verify(
    request: Request,
    payload: RegistrationVerifyRequest,
    principal: Optional[Principal] = Depends(get_optional_principal),
    orchestrator: CeremonyOrchestrator = Depends(get_ceremony_orchestrator),
) -> RegistrationVerifyResponse:
    principal_id = _registration_principal_id(principal, payload.principal_id, orchestrator)
    result = orchestrator.complete_registration(
        principal_id,
        payload.credential,
        context=create_audit_context_from_request(request, principal),
    )
    if not result.verified:
        raise CeremonyError()
    return RegistrationVerifyResponse(
        verified=True, credential=CredentialRead.model_validate(result.credential)
    )


@router.post("/authentication/options", response_model=CeremonyOptionsResponse)
@limiter.limit("30/minute")
def authentication_options(
    request: Request,
    payload: AuthenticationOptionsRequest,
    orchestrator: CeremonyOrchestrator = Depends(get_ceremony_orchestrator),
) -> CeremonyOptionsResponse:
    options = orchestrator.begin_authentication(payload.email, payload.session_key)
    return CeremonyOptionsResponse(public_key=options.public_key)


@router.post("/authentication/verify", response_model=AuthenticationVerifyResponse)
@limiter.limit("10/minute")
def authentication_verify(
    request: Request,
    payload: AuthenticationVerifyRequest,
    orchestrator: CeremonyOrchestrator = Depends(get_ceremony_orchestrator),
    sessions: LoginSessionService = Depends(get_login_session_service),
) -> AuthenticationVerifyResponse:
    """Verify an assertion and open a login session.

    Rate limited per IP. Every failure, whatever its cause, is the same 401.
    The returned ``session_id`` is the bearer token for the other endpoints.
    """
    context = create_audit_context_from_request(request)
    result = orchestrator.complete_authentication(
        payload.credential,
        payload.email,
        payload.session_key,
        context=context,
    )
    if not result.verified:
        raise CeremonyError()

    login = sessions.start(result.principal, context=context)
    return AuthenticationVerifyResponse(
        verified=True,
        principal_id=result.principal.id,
        session_id=login.session_id,
        expires_at=login.expires_at,
    )


@router.get("/{principal_id}", response_model=list[CredentialRead])
def list_passkeys(
    principal_id: str,
    principal: Principal = Depends(get_current_principal),
    orchestrator: CeremonyOrchestrator = Depends(get_ceremony_orchestrator),
) -> list[CredentialRead]:
    _ensure_owner(principal, principal_id)
    return [
        CredentialRead.model_validate(credential)
        for credential in orchestrator.list_credentials(principal.id)
    ]


@router.delete("/{principal_id}/{credential_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_passkey(
    request: Request,
    principal_id: str,
    credential_id: str,
    principal: Principal = Depends(get_current_principal),
    orchestrator: CeremonyOrchestrator = Depends(get_ceremony_orchestrator),
) -> Response:
    _ensure_owner(principal, principal_id)
    orchestrator.delete_credential(
        principal.id,
        credential_id,
        context=create_audit_context_from_request(request, principal),
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
