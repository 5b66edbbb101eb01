from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from thornton_events.db import Base


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        # natural key: re-ingesting a source updates rows instead of duplicating them
        UniqueConstraint("source_name", "source_id", name="uq_events_source_name_source_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    source_name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    source_id: Mapped[str] = mapped_column(String(256), nullable=False)

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    venue: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # free text; categories differ per source
    category: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    price_text: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    source: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    source_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=func.now()
    )


# Columns an ingestion run writes; everything else belongs to the database.
EVENT_COLUMNS = (
    "id", "source_name", "source_id", "title", "description",
    "start_time", "end_time", "timezone", "venue", "city", "state",
    "latitude", "longitude", "category", "price_text", "url", "image_url",
    "source", "source_type", "status",
)
