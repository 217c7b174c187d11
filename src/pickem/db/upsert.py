"""
Dialect-aware INSERT ... ON CONFLICT helpers.

PostgreSQL in production, SQLite in tests. Both dialects provide an
``insert()`` construct with ``on_conflict_do_nothing`` /
``on_conflict_do_update``; this picks the one matching the session's bind.
"""

from typing import Any, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_insert(session: Session, model: Any):
    """Return the dialect-specific insert() for ``model`` on this session's bind."""
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(model)
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    raise ValueError(f"Upserts are not supported on dialect '{dialect_name}'")


def insert_ignore(
    session: Session,
    model: Any,
    rows: Sequence[dict],
    index_elements: Sequence[str],
) -> int:
    """
    Insert rows, skipping any that collide on ``index_elements``.

    Returns:
        Number of rows actually inserted
    """
    if not rows:
        return 0
    stmt = dialect_insert(session, model).values(list(rows))
    stmt = stmt.on_conflict_do_nothing(index_elements=list(index_elements))
    result = session.execute(stmt)
    return max(result.rowcount or 0, 0)
