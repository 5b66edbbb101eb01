from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from thornton_events.db import get_db
from thornton_events.models.deal import Deal, DealStatus, DealType
from thornton_events.services.deals import deal_window, get_deal, list_active_deals, set_deal_status

router = APIRouter(prefix="/deals", tags=["deals"])


# ---------- Schemas ----------
class DealOut(BaseModel):
    id: int
    slug: str
    title: str
    description: Optional[str] = None
    business_name: Optional[str] = None
    business_logo_url: Optional[str] = None
    deal_type: str
    discount_amount: Optional[str] = None
    promo_code: Optional[str] = None
    category: Optional[str] = None
    terms: Optional[str] = None
    start_date: datetime
    end_date: datetime
    url: Optional[str] = None
    image_url: Optional[str] = None
    status: str
    featured: bool
    # display-only, computed per request
    days_left: int = 0
    expiring_soon: bool = False
    expired: bool = False

    class Config:
        from_attributes = True


class StatusIn(BaseModel):
    status: DealStatus


def _out(deal: Deal, now: datetime) -> DealOut:
    w = deal_window(deal.end_date, now)
    return DealOut.model_validate(deal).model_copy(
        update={"days_left": w.days_left, "expiring_soon": w.expiring_soon, "expired": w.expired}
    )


# ---------- Routes ----------
@router.get("", response_model=List[DealOut])
async def list_deals(
    category: Optional[str] = None,
    deal_type: Optional[DealType] = None,
    featured: bool = False,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    now = datetime.now(timezone.utc)
    rows = await list_active_deals(
        db,
        now=now,
        category=category,
        deal_type=deal_type.value if deal_type else None,
        featured=featured,
        limit=limit,
    )
    return [_out(d, now) for d in rows]


@router.get("/{slug}", response_model=DealOut)
async def get_deal_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    row = await get_deal(db, slug)
    if not row:
        raise HTTPException(status_code=404, detail="This deal may have expired or been removed.")
    return _out(row, datetime.now(timezone.utc))


@router.patch("/{slug}/status", response_model=DealOut)
async def update_deal_status(slug: str, payload: StatusIn, db: AsyncSession = Depends(get_db)):
    row = await set_deal_status(db, slug, payload.status.value)
    if not row:
        raise HTTPException(status_code=404, detail="Deal not found")
    return _out(row, datetime.now(timezone.utc))
