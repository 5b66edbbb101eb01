from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from thornton_events.db import Base


class DealType(str, enum.Enum):
    discount = "discount"
    coupon = "coupon"
    promotion = "promotion"
    freebie = "freebie"


class DealStatus(str, enum.Enum):
    active = "active"
    paused = "paused"
    expired = "expired"


class Deal(Base):
    __tablename__ = "deals"
    __table_args__ = (
        CheckConstraint(
            "deal_type IN ('discount', 'coupon', 'promotion', 'freebie')",
            name="ck_deals_deal_type",
        ),
        CheckConstraint("status IN ('active', 'paused', 'expired')", name="ck_deals_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    business_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    business_logo_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    deal_type: Mapped[str] = mapped_column(String(16), nullable=False, default=DealType.promotion.value)
    discount_amount: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    promo_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # admin-controlled; never derived from end_date
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=DealStatus.active.value)
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=func.now()
    )


DEAL_COLUMNS = (
    "slug", "title", "description", "business_name", "business_logo_url",
    "deal_type", "discount_amount", "promo_code", "category", "terms",
    "start_date", "end_date", "url", "image_url", "status", "featured",
)
