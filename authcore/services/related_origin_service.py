"""Administrator-managed WebAuthn related origins."""

from __future__ import annotations

from typing import Any, Optional, Sequence
from urllib.parse import urlsplit

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authcore.core.audit import AuditAction, AuditOutcome, audit_log
from authcore.core.logging import get_logger
from authcore.db import RelatedOrigin
from authcore.domain.exceptions import ConflictError, NotFoundError, ValidationError
from authcore.repositories.related_origin_repository import RelatedOriginRepository

logger = get_logger(__name__)


def normalize_origin(value: str) -> str:
    """Validate and normalize an origin to ``https://host[:port]``.

    Raises:
        ValidationError: Not https, or carries credentials, a path, a query
            or a fragment.
    """
    candidate = (value or "").strip()
    if not candidate or "*" in candidate:
        raise ValidationError("Origin must be a concrete https origin")
    parts = urlsplit(candidate)
    if parts.scheme.lower() != "https":
        raise ValidationError("Origin must use https")
    if not parts.hostname or parts.username or parts.password:
        raise ValidationError("Origin must be https://host[:port]")
    if parts.path not in ("", "/") or parts.query or parts.fragment:
        raise ValidationError("Origin must not include a path, query or fragment")
    return f"https://{parts.netloc.lower()}"


class RelatedOriginService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.repo = RelatedOriginRepository(session)

    def list_origins(self) -> Sequence[RelatedOrigin]:
        return self.repo.list_all()

    def active_origins(self) -> list[str]:
        return [row.origin for row in self.repo.list_active()]

    def well_known_document(self) -> dict[str, Any]:
        """Body of ``/.well-known/webauthn``."""
        return {"origins": self.active_origins()}

    def get(self, origin_id: int) -> RelatedOrigin:
        record = self.repo.get_by_id(origin_id)
        if record is None:
            raise NotFoundError("Related origin not found")
        return record

    def create(
        self,
        origin: str,
        description: Optional[str] = None,
        is_active: bool = True,
        sort_order: int = 0,
    ) -> RelatedOrigin:
        normalized = normalize_origin(origin)
        if self.repo.get_by_origin(normalized) is not None:
            raise ConflictError("Origin already exists")

        record = RelatedOrigin(
            origin=normalized,
            description=description,
            is_active=is_active,
            sort_order=sort_order,
        )
        self.repo.add(record)
        self._commit()
        self.repo.refresh(record)
        audit_log(
            AuditAction.RELATED_ORIGIN_CREATE,
            AuditOutcome.SUCCESS,
            resource_type="related_origin",
            resource_id=str(record.id),
            details={"origin": record.origin},
        )
        return record

    def update(
        self,
        origin_id: int,
        origin: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
        sort_order: Optional[int] = None,
    ) -> RelatedOrigin:
        record = self.get(origin_id)
        if origin is not None:
            normalized = normalize_origin(origin)
            existing = self.repo.get_by_origin(normalized)
            if existing is not None and existing.id != record.id:
                raise ConflictError("Origin already exists")
            record.origin = normalized
        if description is not None:
            record.description = description
        if is_active is not None:
            record.is_active = is_active
        if sort_order is not None:
            record.sort_order = sort_order

        self._commit()
        self.repo.refresh(record)
        audit_log(
            AuditAction.RELATED_ORIGIN_UPDATE,
            AuditOutcome.SUCCESS,
            resource_type="related_origin",
            resource_id=str(record.id),
            details={"origin": record.origin, "is_active": record.is_active},
        )
        return record

    def delete(self, origin_id: int) -> None:
        record = self.get(origin_id)
        origin = record.origin
        self.repo.remove(record)
        self.repo.commit()
        audit_log(
            AuditAction.RELATED_ORIGIN_DELETE,
            AuditOutcome.SUCCESS,
            resource_type="related_origin",
            resource_id=str(origin_id),
            details={"origin": origin},
        )

    def _commit(self) -> None:
        try:
            self.repo.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("Origin already exists") from exc
