"""Domain-level exception hierarchy."""


class DomainError(Exception):
    """Base exception for service-layer errors."""

    def __init__(self, message: str = "Domain error") -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    """Raised when a requested resource cannot be located."""


class ConflictError(DomainError):
    """Raised when a unique constraint or business rule is violated."""


class ForbiddenError(DomainError):
    """Raised when a caller attempts an operation they are not allowed to perform."""


class ValidationError(DomainError):
    """Raised when input fails validation rules."""


class UnauthorizedError(DomainError):
    """Raised when authentication credentials are invalid."""


class PrincipalNotFound(NotFoundError):
    """Raised when a principal id or email does not resolve."""


class ArtifactNotFound(NotFoundError):
    """Raised when a protocol artifact is absent or expired."""


class DuplicateCredentialError(ConflictError):
    """Raised when registering a credential id that already exists."""


class GrantRevokedError(ConflictError):
    """Raised when issuing an artifact under a grant that is being revoked."""


class CeremonyError(UnauthorizedError):
    """Base class for WebAuthn ceremony failures.

    ``kind`` is the internal failure reason used for logs and metrics.
    Callers outside the core only ever see a generic authentication failure.
    """

    kind = "ceremony_error"


class ChallengeNotFound(CeremonyError):
    """Challenge never issued, expired or already consumed (indistinguishable)."""

    kind = "challenge_not_found"

    def __init__(self, message: str = "Challenge not found or expired") -> None:
        super().__init__(message)


class CredentialNotFound(CeremonyError):
    """No stored credential matches the id in the response."""

    kind = "credential_not_found"

    def __init__(self, message: str = "Credential not found") -> None:
        super().__init__(message)


class CounterRegression(CeremonyError):
    """Reported signature counter did not advance; possible cloned authenticator."""

    kind = "counter_regression"

    def __init__(self, stored: int, reported: int) -> None:
        super().__init__(
            f"Signature counter {reported} is not greater than stored counter {stored}"
        )
        self.stored = stored
        self.reported = reported


class VerificationFailed(CeremonyError):
    """The ceremony response did not verify."""

    kind = "verification_failed"


class SignatureInvalid(VerificationFailed):
    kind = "signature_invalid"


class OriginMismatch(VerificationFailed):
    kind = "origin_mismatch"


class MalformedResponse(VerificationFailed):
    """Response is structurally invalid or carries unrecognized enum values."""

    kind = "malformed_response"


class ConsentExpiredOrRevoked(ForbiddenError):
    """No active consent exists for the subject/client pair."""

    def __init__(self, message: str = "Consent expired or revoked") -> None:
        super().__init__(message)
