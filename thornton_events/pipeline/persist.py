from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Sequence

from sqlalchemy import delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from thornton_events.models.deal import DEAL_COLUMNS, Deal, DealType
from thornton_events.models.event import EVENT_COLUMNS, Event
from thornton_events.pipeline.errors import PersistenceError

log = logging.getLogger(__name__)

EVENT_CONFLICT = ("source_name", "source_id")
DEAL_CONFLICT = ("slug",)


def _insert_for(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise PersistenceError(f"upsert is not supported on {dialect}")


def _chunks(rows: Sequence[Dict[str, Any]], size: int) -> Iterable[Sequence[Dict[str, Any]]]:
    size = max(1, size)
    for i in range(0, len(rows), size):
        yield rows[i : i + size]


async def upsert_rows(
    session: AsyncSession,
    table,
    rows: Sequence[Dict[str, Any]],
    *,
    conflict: Sequence[str],
    immutable: Sequence[str] = (),
    keep_when_null: Sequence[str] = (),
    chunk_size: int = 500,
) -> int:
    """
    INSERT .. ON CONFLICT (conflict) DO UPDATE, one commit per chunk.

    Columns in ``conflict`` and ``immutable`` keep their stored values on
    update. Columns in ``keep_when_null`` are only overwritten by non-null
    values. Every other supplied column is overwritten. A failing chunk
    raises PersistenceError and earlier chunks stay committed.
    """
    if not rows:
        return 0
    insert = _insert_for(session)
    keep = set(conflict) | set(immutable)
    written = 0
    for chunk in _chunks(list(rows), chunk_size):
        stmt = insert(table).values(list(chunk))
        update = {c: stmt.excluded[c] for c in chunk[0].keys() if c not in keep}
        for c in keep_when_null:
            if c in update:
                update[c] = func.coalesce(stmt.excluded[c], table.c[c])
        if "updated_at" in table.c:
            update["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=list(conflict), set_=update)
        try:
            await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise PersistenceError(f"upsert into {table.name} failed after {written} rows: {e}") from e
        written += len(chunk)
    return written


async def upsert_events(session: AsyncSession, events: List, *, chunk_size: int = 500) -> int:
    """Events (CanonicalEvent or row dicts) keyed on (source_name, source_id). The id never changes once stored."""
    rows = [e.to_row() if hasattr(e, "to_row") else {k: e.get(k) for k in EVENT_COLUMNS} for e in events]
    missing = [r for r in rows if r.get("start_time") is None]
    if missing:
        raise PersistenceError(f"{len(missing)} events without start_time reached persistence")
    n = await upsert_rows(
        session,
        Event.__table__,
        rows,
        conflict=EVENT_CONFLICT,
        immutable=("id",),
        keep_when_null=("image_url",),
        chunk_size=chunk_size,
    )
    log.info("upserted %d events", n)
    return n


def validate_deal_row(row: Dict[str, Any]) -> Dict[str, Any]:
    allowed = {t.value for t in DealType}
    if row.get("deal_type") not in allowed:
        raise ValueError(f"deal_type must be one of {sorted(allowed)}, got {row.get('deal_type')!r}")
    if not row.get("slug"):
        raise ValueError("deal slug is required")
    return {k: row.get(k) for k in DEAL_COLUMNS}


async def upsert_deals(session: AsyncSession, rows: List[Dict[str, Any]], *, chunk_size: int = 500) -> int:
    clean = [validate_deal_row(r) for r in rows]
    n = await upsert_rows(session, Deal.__table__, clean, conflict=DEAL_CONFLICT, chunk_size=chunk_size)
    log.info("upserted %d deals", n)
    return n


async def delete_expired_deals(session: AsyncSession, url: str, before: datetime) -> int:
    """The pipeline's only delete: deals from one page URL that ended before ``before``."""
    res = await session.execute(delete(Deal).where(Deal.url == url, Deal.end_date < before))
    await session.commit()
    return res.rowcount or 0
