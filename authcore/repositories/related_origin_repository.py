"""Related origin persistence helpers."""

from __future__ import annotations

from typing import Optional, Sequence

from authcore.db import RelatedOrigin
from authcore.repositories.base import SQLAlchemyRepository


class RelatedOriginRepository(SQLAlchemyRepository[RelatedOrigin]):
    def get_by_id(self, origin_id: int) -> Optional[RelatedOrigin]:
        return self.session.get(RelatedOrigin, origin_id)

    def get_by_origin(self, origin: str) -> Optional[RelatedOrigin]:
        return self.session.query(RelatedOrigin).filter(RelatedOrigin.origin == origin).first()

    def list_all(self) -> Sequence[RelatedOrigin]:
        return (
            self.session.query(RelatedOrigin)
            .order_by(RelatedOrigin.sort_order.asc(), RelatedOrigin.id.asc())
            .all()
        )

    def list_active(self) -> Sequence[RelatedOrigin]:
        return (
            self.session.query(RelatedOrigin)
            .filter(RelatedOrigin.is_active.is_(True))
            .order_by(RelatedOrigin.sort_order.asc(), RelatedOrigin.id.asc())
            .all()
        )
