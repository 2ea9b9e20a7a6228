"""Consent persistence helpers."""

from __future__ import annotations

from typing import Optional, Sequence

from authcore.db import Consent
from authcore.repositories.base import SQLAlchemyRepository


class ConsentRepository(SQLAlchemyRepository[Consent]):
    """Queries over the consent history table."""

    def get_current(self, subject_id: str, client_id: str) -> Optional[Consent]:
        """Latest non-superseded row for the pair, whatever its state."""
        return (
            self.session.query(Consent)
            .filter(
                Consent.subject_id == subject_id,
                Consent.client_id == client_id,
                Consent.superseded_at.is_(None),
            )
            .order_by(Consent.issued_at.desc())
            .first()
        )

    def get_by_grant_id(self, grant_id: str) -> Optional[Consent]:
        return self.session.query(Consent).filter(Consent.grant_id == grant_id).first()

    def list_history(self, subject_id: str, client_id: str) -> Sequence[Consent]:
        return (
            self.session.query(Consent)
            .filter(Consent.subject_id == subject_id, Consent.client_id == client_id)
            .order_by(Consent.issued_at.asc())
            .all()
        )
