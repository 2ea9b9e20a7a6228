"""Database utility helpers."""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy.orm import Session

from authcore.core.logging import get_logger

logger = get_logger(__name__)


def upsert_row(
    session: Session,
    model: type,
    values: dict[str, Any],
    key_columns: Iterable[str],
) -> None:
    """Insert ``values`` or overwrite the row sharing ``key_columns``.

    PostgreSQL and SQLite get a single ``INSERT .. ON CONFLICT DO UPDATE``
    so the write is atomic per key. Other dialects fall back to merge.
    The caller commits.
    """
    key_columns = list(key_columns)
    dialect = session.get_bind().dialect.name

    if dialect in ("postgresql", "sqlite"):
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert

        stmt = insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=key_columns,
            set_={name: stmt.excluded[name] for name in values if name not in key_columns},
        )
        session.execute(stmt)
        return

    logger.debug("Dialect %s has no native upsert; using merge", dialect)
    session.merge(model(**values))
