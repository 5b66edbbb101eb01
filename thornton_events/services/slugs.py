from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def unique_slug(session: AsyncSession, model, slug: str, now: Optional[datetime] = None) -> str:
    """``slug`` if unused in ``model``, else ``slug-<epoch millis>``."""
    taken = (await session.execute(select(model.id).where(model.slug == slug).limit(1))).first()
    if taken is None:
        return slug
    now = now or datetime.now(timezone.utc)
    return f"{slug}-{int(now.timestamp() * 1000)}"
