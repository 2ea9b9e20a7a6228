"""WebAuthn registration and authentication ceremonies.

Both ceremonies are two-step state machines: ``begin_*`` issues a challenge
into the shared challenge store and returns browser options, ``complete_*``
consumes that challenge and verifies the signed response. Signature and
attestation checks are delegated to ``webauthn`` (py_webauthn); origin
classification, closed-enum validation and the signature-counter policy are
applied here.
"""

from __future__ import annotations

import binascii
import json
from datetime import datetime
from typing import Any, Optional, Sequence, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.exceptions import (
    InvalidAuthenticatorDataStructure,
    InvalidCBORData,
    InvalidJSONStructure,
    WebAuthnException,
)
from webauthn.helpers.structs import AuthenticatorAttachment as WebAuthnAttachment
from webauthn.helpers.structs import (
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from authcore.core.audit import AuditAction, AuditContext, AuditOutcome, audit_log
from authcore.core.config import settings
from authcore.core.logging import LoggerAdapter, get_logger
from authcore.core.metrics import record_ceremony
from authcore.core.time import Clock, utcnow
from authcore.db import Principal, WebAuthnCredential
from authcore.domain.exceptions import (
    CeremonyError,
    CounterRegression,
    CredentialNotFound,
    MalformedResponse,
    NotFoundError,
    OriginMismatch,
    PrincipalNotFound,
    SignatureInvalid,
    VerificationFailed,
)
from authcore.domain.webauthn import (
    AuthenticationOptions,
    AuthenticationVerification,
    NewCredential,
    RegistrationOptions,
    RegistrationVerification,
    parse_attachment,
    parse_device_type,
    parse_transports,
)
from authcore.repositories.credential_repository import CredentialRepository
from authcore.repositories.principal_repository import PrincipalRepository
from authcore.schemas.webauthn import AuthenticationResponse, RegistrationResponse
from authcore.services.challenge_store import ChallengeStore, get_challenge_store
from authcore.services.related_origin_service import RelatedOriginService

logger = get_logger(__name__)
registration_logger = LoggerAdapter(logger, {"ceremony": "registration"})
authentication_logger = LoggerAdapter(logger, {"ceremony": "authentication"})

ANONYMOUS_KEY = "anonymous"
_MALFORMED_LIBRARY_ERRORS = (InvalidJSONStructure, InvalidCBORData, InvalidAuthenticatorDataStructure)
_KNOWN_TRANSPORTS = {transport.value for transport in AuthenticatorTransport}

ResponseInput = Union[BaseModel, dict[str, Any], str]


def registration_key(principal_id: str) -> str:
    return f"registration:{principal_id}"


def authentication_key(principal_hint: Optional[str] = None, session_key: Optional[str] = None) -> str:
    """Challenge key for an authentication ceremony.

    A hint (email) takes precedence; otherwise an explicit anonymous session
    key keeps concurrent hint-less ceremonies apart.
    """
    if principal_hint:
        return f"authentication:{principal_hint.strip().lower()}"
    if session_key:
        return f"authentication:session:{session_key}"
    return f"authentication:{ANONYMOUS_KEY}"


def _parse_response(model: type[BaseModel], response: ResponseInput) -> Any:
    if isinstance(response, model):
        parsed = response
    else:
        try:
            if isinstance(response, str):
                parsed = model.model_validate_json(response)
            else:
                if isinstance(response, BaseModel):
                    response = response.model_dump(by_alias=True)
                parsed = model.model_validate(response)
        except PydanticValidationError as exc:
            raise MalformedResponse(f"Invalid credential response: {exc.error_count()} error(s)") from exc
    if parsed.id != parsed.raw_id:
        raise MalformedResponse("Credential id and rawId differ")
    return parsed


def _client_origin(client_data_json: str) -> str:
    try:
        client_data = json.loads(base64url_to_bytes(client_data_json))
    except (ValueError, binascii.Error) as exc:
        raise MalformedResponse("clientDataJSON is not valid base64url JSON") from exc
    origin = client_data.get("origin") if isinstance(client_data, dict) else None
    if not isinstance(origin, str):
        raise MalformedResponse("clientDataJSON carries no origin")
    return origin.rstrip("/")


def _descriptor_transports(values: Sequence[str]) -> list[AuthenticatorTransport]:
    return [AuthenticatorTransport(value) for value in values if value in _KNOWN_TRANSPORTS]


class CeremonyOrchestrator:
    """Drives passkey registration and authentication for principals."""

    def __init__(
        self,
        session: Session,
        challenge_store: Optional[ChallengeStore] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.session = session
        self.clock = clock
        self.challenges = challenge_store or get_challenge_store(session)
        self.principals = PrincipalRepository(session)
        self.credentials = CredentialRepository(session)
        self.related_origins = RelatedOriginService(session)

    # Configuration

    @property
    def rp_id(self) -> str:
        return settings.webauthn_rp_id

    def allowed_origins(self) -> list[str]:
        """Configured origins plus active related origins, in that order."""
        origins = list(settings.webauthn_origins)
        for origin in self.related_origins.active_origins():
            if origin not in origins:
                origins.append(origin)
        return origins

    @property
    def _require_user_verification(self) -> bool:
        return settings.webauthn_user_verification == "required"

    # Registration

    def begin_registration(self, principal_id: str) -> RegistrationOptions:
        """Issue a registration challenge and creation options.

        Raises:
            PrincipalNotFound: Unknown principal.
        """
        principal = self._get_principal(principal_id)
        existing = self.credentials.list_for_principal(principal.id)
        challenge = self.challenges.issue(registration_key(principal.id))
        algorithms = [COSEAlgorithmIdentifier(alg) for alg in settings.webauthn_algorithms]

        attachment = settings.webauthn_authenticator_attachment
        options = generate_registration_options(
            rp_id=self.rp_id,
            rp_name=settings.webauthn_rp_name,
            user_id=principal.id.encode("utf-8"),
            user_name=principal.email,
            user_display_name=principal.display_name,
            challenge=challenge.raw,
            timeout=settings.webauthn_timeout_ms,
            exclude_credentials=[
                PublicKeyCredentialDescriptor(
                    id=base64url_to_bytes(credential.credential_id),
                    transports=_descriptor_transports(credential.transports),
                )
                for credential in existing
            ],
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=WebAuthnAttachment(attachment) if attachment else None,
                resident_key=ResidentKeyRequirement(settings.webauthn_resident_key),
                require_resident_key=settings.webauthn_resident_key == "required",
                user_verification=UserVerificationRequirement(settings.webauthn_user_verification),
            ),
            supported_pub_key_algs=algorithms,
        )

        return RegistrationOptions(
            challenge=challenge.value,
            rp_id=self.rp_id,
            rp_name=settings.webauthn_rp_name,
            principal_id=principal.id,
            principal_name=principal.email,
            principal_display_name=principal.display_name,
            exclude_credential_ids=[credential.credential_id for credential in existing],
            algorithm_preferences=list(settings.webauthn_algorithms),
            public_key=json.loads(options_to_json(options)),
        )

    def complete_registration(
        self,
        principal_id: str,
        response: ResponseInput,
        *,
        context: Optional[AuditContext] = None,
    ) -> RegistrationVerification:
        """Verify an attestation against the outstanding challenge.

        Verification failures return ``verified=False`` and persist nothing.

        Raises:
            PrincipalNotFound: Unknown principal.
            ChallengeNotFound: No live challenge for the principal.
            DuplicateCredentialError: The authenticator is already registered.
        """
        principal = self._get_principal(principal_id)
        try:
            expected_challenge = self.challenges.consume(registration_key(principal.id))
            new_credential = self._verify_attestation(response, expected_challenge)
        except VerificationFailed as exc:
            self._record_failure("registration", exc, principal, context)
            return RegistrationVerification(verified=False)
        except CeremonyError as exc:
            self._record_failure("registration", exc, principal, context)
            raise

        credential = self.credentials.register(principal.id, new_credential)
        record_ceremony("registration", True)
        audit_log(
            AuditAction.PASSKEY_REGISTER_SUCCESS,
            AuditOutcome.SUCCESS,
            context=context,
            principal_id=principal.id,
            email=principal.email,
            resource_type="credential",
            resource_id=credential.credential_id,
            details={"device_type": credential.device_type, "aaguid": credential.aaguid},
        )
        registration_logger.info("Registered passkey", extra={"principal_id": principal.id})
        return RegistrationVerification(verified=True, credential=credential)

    def _verify_attestation(self, response: ResponseInput, expected_challenge: bytes) -> NewCredential:
        parsed: RegistrationResponse = _parse_response(RegistrationResponse, response)
        transports = parse_transports(parsed.response.transports)
        attachment = parse_attachment(parsed.authenticator_attachment)
        self._check_origin(parsed.response.client_data_json)

        try:
            verification = verify_registration_response(
                credential=parsed.model_dump(by_alias=True, exclude_none=True),
                expected_challenge=expected_challenge,
                expected_rp_id=self.rp_id,
                expected_origin=self.allowed_origins(),
                require_user_verification=self._require_user_verification,
                supported_pub_key_algs=[
                    COSEAlgorithmIdentifier(alg) for alg in settings.webauthn_algorithms
                ],
            )
        except _MALFORMED_LIBRARY_ERRORS as exc:
            raise MalformedResponse(str(exc)) from exc
        except (WebAuthnException, ValueError) as exc:
            raise SignatureInvalid(str(exc)) from exc

        return NewCredential(
            credential_id=bytes_to_base64url(verification.credential_id),
            public_key=verification.credential_public_key,
            sign_count=verification.sign_count,
            device_type=parse_device_type(verification.credential_device_type),
            backed_up=verification.credential_backed_up,
            transports=transports,
            attachment=attachment,
            aaguid=verification.aaguid,
        )

    # Authentication

    def begin_authentication(
        self,
        principal_hint: Optional[str] = None,
        session_key: Optional[str] = None,
    ) -> AuthenticationOptions:
        """Issue an authentication challenge and request options.

        With a hint the options carry the principal's credential ids. An
        unknown hint yields the same shape as a hint-less request so the
        response does not reveal which emails are registered.
        """
        allow_ids: Optional[list[str]] = None
        descriptors: Optional[list[PublicKeyCredentialDescriptor]] = None
        if principal_hint:
            principal = self.principals.get_by_email(principal_hint)
            if principal is not None:
                existing = self.credentials.list_for_principal(principal.id)
                allow_ids = [credential.credential_id for credential in existing]
                descriptors = [
                    PublicKeyCredentialDescriptor(
                        id=base64url_to_bytes(credential.credential_id),
                        transports=_descriptor_transports(credential.transports),
                    )
                    for credential in existing
                ]

        challenge = self.challenges.issue(authentication_key(principal_hint, session_key))
        options = generate_authentication_options(
            rp_id=self.rp_id,
            challenge=challenge.raw,
            timeout=settings.webauthn_timeout_ms,
            allow_credentials=descriptors,
            user_verification=UserVerificationRequirement(settings.webauthn_user_verification),
        )
        return AuthenticationOptions(
            challenge=challenge.value,
            rp_id=self.rp_id,
            allow_credential_ids=allow_ids,
            public_key=json.loads(options_to_json(options)),
        )

    def complete_authentication(
        self,
        response: ResponseInput,
        principal_hint: Optional[str] = None,
        session_key: Optional[str] = None,
        *,
        context: Optional[AuditContext] = None,
    ) -> AuthenticationVerification:
        """Verify an assertion and advance the credential's counter.

        Signature and origin failures return ``verified=False``.

        Raises:
            CredentialNotFound: No credential matches the response id.
            ChallengeNotFound: No live challenge for the ceremony key.
            CounterRegression: The counter did not advance.
        """
        credential: Optional[WebAuthnCredential] = None
        try:
            parsed: AuthenticationResponse = _parse_response(AuthenticationResponse, response)
            credential = self.credentials.find_by_credential_id(parsed.id)
            if credential is None or not self._matches_hint(credential, principal_hint):
                raise CredentialNotFound()

            expected_challenge = self.challenges.consume(
                authentication_key(principal_hint, session_key)
            )
            self._check_origin(parsed.response.client_data_json)
            new_sign_count = self._verify_assertion(parsed, credential, expected_challenge)
            authenticated_at = self._apply_counter(credential, new_sign_count)
        except VerificationFailed as exc:
            self._record_failure(
                "authentication", exc, credential.principal if credential else None, context
            )
            return AuthenticationVerification(verified=False)
        except CeremonyError as exc:
            self._record_failure(
                "authentication", exc, credential.principal if credential else None, context
            )
            raise

        principal = credential.principal
        record_ceremony("authentication", True)
        audit_log(
            AuditAction.PASSKEY_LOGIN_SUCCESS,
            AuditOutcome.SUCCESS,
            context=context,
            principal_id=principal.id,
            email=principal.email,
            resource_type="credential",
            resource_id=credential.credential_id,
        )
        authentication_logger.info("Authenticated with passkey", extra={"principal_id": principal.id})
        return AuthenticationVerification(
            verified=True,
            principal=principal,
            credential_id=credential.credential_id,
            new_sign_count=new_sign_count,
            authenticated_at=authenticated_at,
        )

    def _verify_assertion(
        self,
        parsed: AuthenticationResponse,
        credential: WebAuthnCredential,
        expected_challenge: bytes,
    ) -> int:
        try:
            verification = verify_authentication_response(
                credential=parsed.model_dump(by_alias=True, exclude_none=True),
                expected_challenge=expected_challenge,
                expected_rp_id=self.rp_id,
                expected_origin=self.allowed_origins(),
                credential_public_key=credential.public_key,
                # Counter policy is applied by _apply_counter
                credential_current_sign_count=0,
                require_user_verification=self._require_user_verification,
            )
        except _MALFORMED_LIBRARY_ERRORS as exc:
            raise MalformedResponse(str(exc)) from exc
        except (WebAuthnException, ValueError) as exc:
            raise SignatureInvalid(str(exc)) from exc
        return verification.new_sign_count

    def _apply_counter(self, credential: WebAuthnCredential, reported: int) -> datetime:
        """Accept a strictly increasing counter, or 0 after 0 unless strict.

        The UPDATE is guarded on the counter that was read, so two
        assertions racing on the same value cannot both be accepted.
        """
        stored = credential.sign_count
        tolerated_zero = stored == 0 and reported == 0 and not settings.webauthn_strict_counter
        if reported <= stored and not tolerated_zero:
            raise CounterRegression(stored=stored, reported=reported)

        now = self.clock()
        if not self.credentials.update_after_auth(
            credential.credential_id, reported, now, expected_counter=stored
        ):
            raise CounterRegression(stored=stored, reported=reported)
        self.session.refresh(credential)
        return now

    # Credential management

    def list_credentials(self, principal_id: str) -> Sequence[WebAuthnCredential]:
        principal = self._get_principal(principal_id)
        return self.credentials.list_for_principal(principal.id)

    def delete_credential(
        self,
        principal_id: str,
        credential_id: str,
        *,
        context: Optional[AuditContext] = None,
    ) -> None:
        if not self.credentials.delete_for_principal(principal_id, credential_id):
            raise NotFoundError("Credential not found")
        audit_log(
            AuditAction.PASSKEY_DELETE,
            AuditOutcome.SUCCESS,
            context=context,
            principal_id=principal_id,
            resource_type="credential",
            resource_id=credential_id,
        )

    # Helpers

    def _get_principal(self, principal_id: str) -> Principal:
        principal = self.principals.get_by_id(principal_id)
        if principal is None:
            raise PrincipalNotFound(f"Principal {principal_id} not found")
        return principal

    @staticmethod
    def _matches_hint(credential: WebAuthnCredential, principal_hint: Optional[str]) -> bool:
        if not principal_hint:
            return True
        return credential.principal.email == principal_hint.strip().lower()

    def _check_origin(self, client_data_json: str) -> None:
        origin = _client_origin(client_data_json)
        if origin not in self.allowed_origins():
            raise OriginMismatch(f"Origin {origin} is not allowed")

    def _record_failure(
        self,
        ceremony: str,
        exc: CeremonyError,
        principal: Optional[Principal],
        context: Optional[AuditContext],
    ) -> None:
        record_ceremony(ceremony, False, exc.kind)
        action = (
            AuditAction.PASSKEY_REGISTER_FAILURE
            if ceremony == "registration"
            else AuditAction.PASSKEY_LOGIN_FAILURE
        )
        details: dict[str, Any] = {}
        if isinstance(exc, CounterRegression):
            details = {"stored_counter": exc.stored, "reported_counter": exc.reported}
        audit_log(
            action,
            AuditOutcome.FAILURE,
            context=context,
            principal_id=principal.id if principal else None,
            email=principal.email if principal else None,
            details=details,
            error_kind=exc.kind,
        )
        ceremony_logger = (
            registration_logger if ceremony == "registration" else authentication_logger
        )
        ceremony_logger.warning(
            "Passkey ceremony failed",
            extra={"kind": exc.kind, "principal_id": principal.id if principal else None},
        )
