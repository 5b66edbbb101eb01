"""Deal listing, display window, admin status changes and import of deals found on the web."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel
from sqlalchemy import asc, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from thornton_events.models.deal import Deal, DealStatus, DealType
from thornton_events.services.slugs import unique_slug
from thornton_events.services.sourcing import search_web
from thornton_events.utils.text import clean_html, slugify

log = logging.getLogger(__name__)

EXPIRING_SOON_DAYS = 3
DEFAULT_IMPORT_DAYS = 30

CATEGORY_MAP = {
    "Local Deals": "Local Deals",
    "Coupons": "Retail & Shopping",
    "Retail & Shopping": "Retail & Shopping",
    "Restaurants": "Restaurants & Dining",
    "Restaurants & Dining": "Restaurants & Dining",
    "Kids Activities": "Kids Activities",
}

_DISCOUNT = re.compile(r"(\d{1,3}%\s*off|\$\d+(?:\.\d{2})?\s*off|buy one,? get one(?: free)?|bogo|half[- ]price)", re.I)
_PROMO = re.compile(r"\b(?:promo\s+)?code[:\s]+([A-Z0-9]{4,20})\b")


def _utc(dt: datetime) -> datetime:
    # sqlite hands back naive datetimes; they were stored as UTC
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


@dataclass(frozen=True)
class DealWindow:
    days_left: int
    expiring_soon: bool
    expired: bool


def deal_window(end_date: datetime, now: Optional[datetime] = None) -> DealWindow:
    """
    Display-only view of how long a deal has left. It does not look at or
    change ``Deal.status``: a deal past its end date stays ``active`` until
    someone calls ``set_deal_status``.
    """
    now = _utc(now or datetime.now(timezone.utc))
    days_left = math.ceil((_utc(end_date) - now).total_seconds() / 86400)
    return DealWindow(
        days_left=days_left,
        expiring_soon=0 < days_left <= EXPIRING_SOON_DAYS,
        expired=days_left <= 0,
    )


async def list_active_deals(
    session: AsyncSession,
    *,
    now: Optional[datetime] = None,
    category: Optional[str] = None,
    deal_type: Optional[str] = None,
    featured: Optional[bool] = None,
    limit: int = 50,
) -> List[Deal]:
    now = now or datetime.now(timezone.utc)
    stmt = select(Deal).where(Deal.status == DealStatus.active.value, Deal.end_date >= now)
    if category:
        stmt = stmt.where(Deal.category == category)
    if deal_type:
        stmt = stmt.where(Deal.deal_type == deal_type)
    if featured:
        stmt = stmt.where(Deal.featured.is_(True))
    stmt = stmt.order_by(desc(Deal.featured), asc(Deal.end_date)).limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def get_deal(session: AsyncSession, slug: str) -> Optional[Deal]:
    return (await session.execute(select(Deal).where(Deal.slug == slug))).scalar_one_or_none()


async def set_deal_status(session: AsyncSession, slug: str, status: str) -> Optional[Deal]:
    """The only way a deal's status changes. Unknown status -> ValueError, unknown slug -> None."""
    try:
        status = DealStatus(status).value
    except ValueError:
        raise ValueError(f"status must be one of {[s.value for s in DealStatus]}, got {status!r}") from None
    deal = await get_deal(session, slug)
    if deal is None:
        return None
    deal.status = status
    await session.commit()
    await session.refresh(deal)
    log.info("deal %s -> %s", slug, status)
    return deal


# ---------- Deals found on the web ----------
class ExternalDeal(BaseModel):
    source: str
    source_url: str
    title: str
    description: str = ""
    business_name: str = "Local Business"
    discount_amount: Optional[str] = None
    promo_code: Optional[str] = None
    category: str = "Local Deals"
    image_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    original_url: str


def deal_type_for(title: str, description: str, promo_code: Optional[str] = None) -> str:
    t, d = (title or "").lower(), (description or "").lower()
    if "free" in t or "free" in d:
        return DealType.freebie.value
    if promo_code or "code" in t or "code" in d:
        return DealType.coupon.value
    if "%" in t or "off" in t or "% off" in d:
        return DealType.discount.value
    return DealType.promotion.value


def _base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = digits[r] + out
        if n == 0:
            return out


def _site(url: str) -> str:
    host = urlparse(url).netloc.lower()
    return host[4:] if host.startswith("www.") else host


def result_to_external_deal(result: dict) -> ExternalDeal:
    url = result.get("url") or ""
    site = _site(url)
    text = clean_html(result.get("content") or "")
    discount = _DISCOUNT.search(f"{result.get('title', '')} {text}")
    promo = _PROMO.search(text)
    return ExternalDeal(
        source=site or "web",
        source_url=f"https://{site}" if site else url,
        title=clean_html(result.get("title") or "") or "Local Deal",
        description=text[:500],
        business_name=site or "Local Business",
        discount_amount=discount.group(1) if discount else None,
        promo_code=promo.group(1) if promo else None,
        original_url=url,
    )


async def search_external_deals(
    location: str = "Thornton, CO", query: str = "deals", *, api_key: str, max_results: int = 10
) -> List[ExternalDeal]:
    """Candidate deals from a web search; nothing is written until ``import_external_deal``."""
    results = await search_web(f"{query} {location} discounts coupons specials", api_key=api_key, max_results=max_results)
    deals = [result_to_external_deal(r) for r in results]
    log.info("found %d external deals for %r", len(deals), location)
    return deals


async def import_external_deal(
    session: AsyncSession, deal: ExternalDeal, *, now: Optional[datetime] = None
) -> Deal:
    now = now or datetime.now(timezone.utc)
    base = f"{slugify(deal.title, 50)}-{_base36(int(now.timestamp() * 1000))}"
    row = Deal(
        slug=await unique_slug(session, Deal, base, now),
        title=deal.title,
        description=f"{deal.description}\n\nSource: {deal.source}",
        business_name=deal.business_name,
        deal_type=deal_type_for(deal.title, deal.description, deal.promo_code),
        discount_amount=deal.discount_amount,
        promo_code=deal.promo_code,
        category=CATEGORY_MAP.get(deal.category, "Local Deals"),
        terms=f"Originally found on {deal.source}. Visit {deal.original_url} for full terms and conditions.",
        start_date=now,
        end_date=deal.expires_at or now + timedelta(days=DEFAULT_IMPORT_DAYS),
        url=deal.original_url,
        image_url=deal.image_url,
        status=DealStatus.active.value,
        featured=False,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    log.info("imported deal %s from %s", row.slug, deal.source)
    return row
