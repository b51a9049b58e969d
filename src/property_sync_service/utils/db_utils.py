"""
Database utility functions that hide dialect differences of the statements the
sync engine relies on (insert-or-ignore and upsert).
"""

import logging
from typing import Any, Dict, Iterable, Sequence

from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
    "mysql": mysql.insert,
    "mariadb": mysql.insert,
}


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


def _insert_for(dialect: str):
    try:
        return _INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"Unsupported database dialect: {dialect}") from None


def insert_ignore(model, dialect: str, values: Dict[str, Any], conflict_columns: Sequence[str]):
    """
    INSERT that silently does nothing when a unique constraint is hit.

    Args:
        model: SQLAlchemy model class
        dialect: Dialect name as returned by ``dialect_name``
        values: Column values of the row
        conflict_columns: Columns of the unique constraint (ignored by MySQL)

    Returns:
        An executable insert statement
    """
    stmt = _insert_for(dialect)(model).values(**values)
    if dialect in ("mysql", "mariadb"):
        return stmt.prefix_with("IGNORE")
    return stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))


def upsert(
    model,
    dialect: str,
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Iterable[str],
):
    """INSERT that updates ``update_columns`` of the existing row on conflict."""
    update_columns = list(update_columns)
    stmt = _insert_for(dialect)(model).values(**values)
    if dialect in ("mysql", "mariadb"):
        return stmt.on_duplicate_key_update(
            **{column: stmt.inserted[column] for column in update_columns}
        )
    return stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )


def snapshot(instance, attributes: Iterable[str]) -> Dict[str, Any]:
    """Current values of ``attributes`` on a mapped instance."""
    return {name: getattr(instance, name) for name in attributes}
