"""Audit logging for credential, session and consent lifecycle events.

Audit events capture:
- Who performed the action (principal id, email, kind)
- What happened (action type, resource type and id)
- When it happened (timestamp)
- Where it originated (IP address, user agent, request id)
- Outcome (success/failure/denied), and for ceremony failures the specific
  failure kind, which is never returned to the caller
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .logging import MASK, get_logger


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Passkey ceremonies
    PASSKEY_REGISTER_SUCCESS = "passkey.register.success"
    PASSKEY_REGISTER_FAILURE = "passkey.register.failure"
    PASSKEY_LOGIN_SUCCESS = "passkey.login.success"
    PASSKEY_LOGIN_FAILURE = "passkey.login.failure"
    PASSKEY_DELETE = "passkey.delete"

    # Sessions and protocol artifacts
    SESSION_CREATE = "session.create"
    GRANT_REVOKE = "grant.revoke"

    # Consent
    CONSENT_GRANT = "consent.grant"
    CONSENT_REVOKE = "consent.revoke"
    ACCESS_DENIED = "access.denied"

    # Related origins
    RELATED_ORIGIN_CREATE = "webauthn.origin.create"
    RELATED_ORIGIN_UPDATE = "webauthn.origin.update"
    RELATED_ORIGIN_DELETE = "webauthn.origin.delete"


class AuditOutcome(str, Enum):
    """Outcome of an audited action."""

    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"
    ERROR = "error"


@dataclass
class AuditContext:
    """Who performed the action and from where."""

    principal_id: Optional[str] = None
    email: Optional[str] = None
    principal_kind: Optional[str] = None
    client_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


@dataclass
class AuditEvent:
    """A single, immutable audit log entry."""

    action: AuditAction
    outcome: AuditOutcome
    context: AuditContext
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "audit": True,  # Marker for log filtering
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "outcome": self.outcome.value,
            "context": asdict(self.context),
        }

        if self.resource_type:
            data["resource"] = {"type": self.resource_type, "id": self.resource_id}

        if self.details:
            data["details"] = mask_sensitive_data(self.details)

        if self.error_kind:
            data["kind"] = self.error_kind

        return data


class AuditLogger:
    """Logger for audit events.

    Audit records go to a dedicated logger so they can be routed to separate
    storage (file, SIEM) for security monitoring.
    """

    def __init__(self, logger_name: str = "audit") -> None:
        """Initialize audit logger.

        Args:
            logger_name: Name suffix for the audit logger.
        """
        self._logger = get_logger(f"authcore.{logger_name}")
        # Audit records are always at least INFO
        self._logger.setLevel(logging.INFO)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event.

        Errors are logged at ERROR, failures and denials at WARNING, the
        rest at INFO.

        Args:
            event: The audit event to log.
        """
        log_data = event.to_dict()
        message = f"AUDIT: {event.action.value} - {event.outcome.value}"

        if event.outcome == AuditOutcome.ERROR:
            self._logger.error(message, extra=log_data)
        elif event.outcome in (AuditOutcome.FAILURE, AuditOutcome.DENIED):
            self._logger.warning(message, extra=log_data)
        else:
            self._logger.info(message, extra=log_data)


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger instance.

    Returns:
        The process-wide AuditLogger, created on first use.
    """
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def audit_log(
    action: AuditAction,
    outcome: AuditOutcome,
    *,
    context: Optional[AuditContext] = None,
    principal_id: Optional[str] = None,
    email: Optional[str] = None,
    client_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    error_kind: Optional[str] = None,
) -> None:
    """Log an audit event using the global logger.

    Explicit ``principal_id``/``email``/``client_id`` override the matching
    fields of ``context``.

    Args:
        action: The action being audited.
        outcome: Outcome of the action.
        context: Actor and request context.
        principal_id: Principal the event concerns.
        email: Email of that principal.
        client_id: Client application involved, if any.
        resource_type: Type of resource affected.
        resource_id: ID of resource affected.
        details: Additional details.
        error_kind: Failure kind, for failed ceremonies.

    Example:
        >>> audit_log(
        ...     AuditAction.PASSKEY_LOGIN_FAILURE,
        ...     AuditOutcome.FAILURE,
        ...     principal_id="admin-1",
        ...     error_kind="counter_regression",
        ... )
    """
    ctx = AuditContext(**asdict(context)) if context else AuditContext()
    if principal_id is not None:
        ctx.principal_id = principal_id
    if email is not None:
        ctx.email = email
    if client_id is not None:
        ctx.client_id = client_id

    get_audit_logger().log(
        AuditEvent(
            action=action,
            outcome=outcome,
            context=ctx,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            error_kind=error_kind,
        )
    )


def create_audit_context_from_request(request: Any, principal: Optional[Any] = None) -> AuditContext:
    """Create an AuditContext from a FastAPI request and optional principal.

    Args:
        request: FastAPI Request object.
        principal: Authenticated principal, if any.

    Returns:
        AuditContext populated from the request headers and principal.
    """
    ip_address = None
    user_agent = None
    request_id = None
    if hasattr(request, "headers"):
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            ip_address = forwarded_for.split(",")[0].strip()
        elif getattr(request, "client", None):
            ip_address = request.client.host
        user_agent = request.headers.get("user-agent")
        request_id = request.headers.get("x-request-id")

    return AuditContext(
        principal_id=principal.id if principal else None,
        email=principal.email if principal else None,
        principal_kind=principal.kind if principal else None,
        ip_address=ip_address,
        user_agent=user_agent,
        request_id=request_id,
    )


def mask_sensitive_data(
    data: dict[str, Any], sensitive_keys: set[str] | None = None
) -> dict[str, Any]:
    """Mask credential material in data before logging.

    Args:
        data: Dictionary to mask; nested dictionaries are masked too.
        sensitive_keys: Key fragments to mask. Defaults to credential fields.

    Returns:
        A copy of ``data`` with sensitive values replaced.
    """
    if sensitive_keys is None:
        sensitive_keys = {
            "challenge",
            "public_key",
            "signature",
            "secret",
            "token",
            "client_data",
            "attestation",
        }

    masked = {}
    for key, value in data.items():
        if any(s in key.lower() for s in sensitive_keys):
            masked[key] = MASK
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value, sensitive_keys)
        else:
            masked[key] = value

    return masked
