from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import asc, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from thornton_events.db import get_db
from thornton_events.models.event import Event

router = APIRouter(prefix="/events", tags=["events"])


# ---------- Schemas ----------
class EventOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    timezone: Optional[str] = None
    venue: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category: Optional[str] = None
    price_text: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    source: Optional[str] = None
    source_name: str
    status: str

    class Config:
        from_attributes = True


# ---------- Routes ----------
@router.get("", response_model=List[EventOut])
async def list_events(
    category: Optional[str] = None,
    city: Optional[str] = None,
    source: Optional[str] = None,
    q: Optional[str] = Query(None, min_length=2),
    include_past: bool = False,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Event)
    if not include_past:
        stmt = stmt.where(Event.start_time >= datetime.now(timezone.utc))
    if category:
        stmt = stmt.where(Event.category.ilike(f"%{category}%"))
    if city:
        stmt = stmt.where(Event.city == city)
    if source:
        stmt = stmt.where(Event.source == source)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(or_(Event.title.ilike(like), Event.description.ilike(like), Event.venue.ilike(like)))
    stmt = stmt.order_by(asc(Event.start_time)).limit(limit)
    return (await db.execute(stmt)).scalars().all()


@router.get("/{event_id}", response_model=EventOut)
async def get_event(event_id: str, db: AsyncSession = Depends(get_db)):
    row = await db.get(Event, event_id)
    if not row:
        raise HTTPException(status_code=404, detail="Event not found")
    return row
