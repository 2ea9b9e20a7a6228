"""WebAuthn credential persistence helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from authcore.db import WebAuthnCredential
from authcore.domain.exceptions import DuplicateCredentialError
from authcore.domain.webauthn import NewCredential
from authcore.repositories.base import SQLAlchemyRepository


class CredentialRepository(SQLAlchemyRepository[WebAuthnCredential]):
    """Encapsulates credential access patterns (one principal, many credentials)."""

    def register(self, principal_id: str, credential: NewCredential) -> WebAuthnCredential:
        """Insert a newly attested credential.

        Raises:
            DuplicateCredentialError: If the credential id is already registered.
        """
        if self.find_by_credential_id(credential.credential_id) is not None:
            raise DuplicateCredentialError("Credential is already registered")

        record = WebAuthnCredential(
            credential_id=credential.credential_id,
            principal_id=principal_id,
            public_key=credential.public_key,
            sign_count=credential.sign_count,
            device_type=credential.device_type.value,
            attachment=credential.attachment.value if credential.attachment else None,
            backed_up=credential.backed_up,
            transports=[transport.value for transport in credential.transports],
            aaguid=credential.aaguid,
        )
        self.add(record)
        try:
            self.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration of the same authenticator
            self.session.rollback()
            raise DuplicateCredentialError("Credential is already registered") from exc
        return self.refresh(record)

    def find_by_credential_id(self, credential_id: str) -> Optional[WebAuthnCredential]:
        return (
            self.session.query(WebAuthnCredential)
            .filter(WebAuthnCredential.credential_id == credential_id)
            .first()
        )

    def list_for_principal(self, principal_id: str) -> Sequence[WebAuthnCredential]:
        return (
            self.session.query(WebAuthnCredential)
            .filter(WebAuthnCredential.principal_id == principal_id)
            .order_by(WebAuthnCredential.created_at.asc(), WebAuthnCredential.id.asc())
            .all()
        )

    def update_after_auth(
        self,
        credential_id: str,
        new_counter: int,
        timestamp: datetime,
        expected_counter: Optional[int] = None,
    ) -> bool:
        """Persist the new counter and last-used time in one UPDATE.

        With ``expected_counter`` the row only changes if its counter still
        holds that value, so two assertions racing on the same counter
        cannot both be accepted. Returns whether a row was updated.
        """
        stmt = (
            update(WebAuthnCredential)
            .where(WebAuthnCredential.credential_id == credential_id)
            .values(sign_count=new_counter, last_used_at=timestamp)
        )
        if expected_counter is not None:
            stmt = stmt.where(WebAuthnCredential.sign_count == expected_counter)
        result = self.session.execute(stmt)
        self.commit()
        return result.rowcount > 0

    def delete_for_principal(self, principal_id: str, credential_id: str) -> bool:
        record = (
            self.session.query(WebAuthnCredential)
            .filter(
                WebAuthnCredential.principal_id == principal_id,
                WebAuthnCredential.credential_id == credential_id,
            )
            .first()
        )
        if record is None:
            return False
        self.remove(record)
        self.commit()
        return True
