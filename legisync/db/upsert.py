"""
Idempotent bulk upsert by natural key.

Renders ``INSERT ... ON CONFLICT (natural key) DO UPDATE`` for PostgreSQL
and SQLite. ``created_at`` is only part of the insert values, so the
original creation timestamp survives every later write, while
``updated_at`` is refreshed on each write.

Responsibility: Dialect-aware natural-key upserts with insert/update counts
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Sequence, Set, Tuple

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..utils.timestamps import utcnow

logger = logging.getLogger(__name__)

# Columns an upsert never overwrites on conflict
IMMUTABLE_COLUMNS = frozenset({"id", "created_at"})


def _dialect_insert(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")


async def existing_keys(
    session: AsyncSession,
    model,
    key_columns: Sequence[str],
    rows: Sequence[Dict[str, Any]],
) -> Set[Tuple[Any, ...]]:
    """Natural keys among ``rows`` that already exist in the table."""
    if not rows:
        return set()
    lead = key_columns[0]
    lead_values = {row[lead] for row in rows}
    columns = [getattr(model, name) for name in key_columns]
    result = await session.execute(
        select(*columns).where(getattr(model, lead).in_(lead_values))
    )
    wanted = {tuple(row[name] for name in key_columns) for row in rows}
    return {tuple(found) for found in result.all()} & wanted


async def upsert_rows(
    session: AsyncSession,
    model,
    key_columns: Sequence[str],
    rows: Iterable[Dict[str, Any]],
) -> Tuple[int, int]:
    """
    Insert or update ``rows`` keyed by ``key_columns``.

    Rows must be unique by key within one call.

    Returns:
        Tuple of (inserted, updated)
    """
    payload: List[Dict[str, Any]] = []
    now = utcnow()
    for row in rows:
        data = {key: value for key, value in row.items() if key not in IMMUTABLE_COLUMNS}
        data["created_at"] = now
        data["updated_at"] = now
        payload.append(data)

    if not payload:
        return 0, 0

    already = await existing_keys(session, model, key_columns, payload)

    insert = _dialect_insert(session)
    stmt = insert(model).values(payload)
    update_columns = {
        name: stmt.excluded[name]
        for name in payload[0].keys()
        if name not in IMMUTABLE_COLUMNS and name not in key_columns
    }
    stmt = stmt.on_conflict_do_update(
        index_elements=list(key_columns),
        set_=update_columns,
    )
    await session.execute(stmt)

    updated = len(already)
    inserted = len(payload) - updated
    logger.debug("Upserted %s %s rows (%s new)", len(payload), model.__tablename__, inserted)
    return inserted, updated
