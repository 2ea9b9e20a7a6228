"""Principal persistence helpers."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

from authcore.db import Principal
from authcore.domain.exceptions import ConflictError
from authcore.domain.webauthn import PrincipalKind
from authcore.repositories.base import SQLAlchemyRepository


class PrincipalRepository(SQLAlchemyRepository[Principal]):
    """Lookup and lifecycle of authenticating principals."""

    def get_by_id(self, principal_id: str) -> Optional[Principal]:
        return self.session.get(Principal, principal_id)

    def get_by_email(self, email: str) -> Optional[Principal]:
        return (
            self.session.query(Principal)
            .filter(Principal.email == email.strip().lower())
            .first()
        )

    def create(
        self,
        email: str,
        display_name: str,
        kind: PrincipalKind = PrincipalKind.CUSTOMER,
        principal_id: Optional[str] = None,
    ) -> Principal:
        principal = Principal(
            email=email.strip().lower(),
            display_name=display_name,
            kind=PrincipalKind(kind).value,
        )
        if principal_id is not None:
            principal.id = principal_id
        self.add(principal)
        try:
            self.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("Principal with this id or email already exists") from exc
        return self.refresh(principal)

    def delete(self, principal: Principal) -> None:
        """Delete a principal; its credentials go with it."""
        self.remove(principal)
        self.commit()
