from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from thornton_events.models.article import Article
from thornton_events.services.slugs import unique_slug

log = logging.getLogger(__name__)

DEFAULT_AUTHOR = "Thornton Events Team"
EXCERPT_CHARS = 200
PUBLISHED = "published"
DRAFT = "draft"


class ArticleIn(BaseModel):
    title: str
    content: str
    slug: str
    subtitle: Optional[str] = None
    excerpt: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    author_name: Optional[str] = None
    status: str = DRAFT
    featured: bool = False
    featured_image_url: Optional[str] = None

    @field_validator("title", "content", "slug")
    @classmethod
    def _required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("title, content and slug are required")
        return v.strip()

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        if v not in (DRAFT, PUBLISHED):
            raise ValueError("status must be 'draft' or 'published'")
        return v


async def save_article(session: AsyncSession, data: ArticleIn, *, now: Optional[datetime] = None) -> Article:
    now = now or datetime.now(timezone.utc)
    row = Article(
        slug=await unique_slug(session, Article, data.slug, now),
        title=data.title,
        subtitle=data.subtitle or None,
        excerpt=data.excerpt or data.content[:EXCERPT_CHARS],
        content=data.content,
        category=data.category,
        tags=sorted(set(data.tags)),
        author_name=data.author_name or DEFAULT_AUTHOR,
        status=data.status,
        featured=data.featured,
        featured_image_url=data.featured_image_url or None,
        view_count=0,
        published_at=now if data.status == PUBLISHED else None,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    log.info("saved article %s (%s)", row.slug, row.status)
    return row


async def list_published(
    session: AsyncSession, *, category: Optional[str] = None, limit: int = 100
) -> List[Article]:
    stmt = select(Article).where(Article.status == PUBLISHED)
    if category:
        stmt = stmt.where(Article.category == category)
    stmt = stmt.order_by(desc(Article.published_at)).limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def get_published(session: AsyncSession, slug: str) -> Optional[Article]:
    stmt = select(Article).where(Article.slug == slug, Article.status == PUBLISHED)
    return (await session.execute(stmt)).scalar_one_or_none()


async def record_view(session: AsyncSession, article_id: int) -> None:
    """view_count + 1 in the database itself, so concurrent views are not lost. No dedup."""
    await session.execute(
        update(Article).where(Article.id == article_id).values(view_count=Article.view_count + 1)
    )
    await session.commit()


async def related_articles(session: AsyncSession, article: Article, limit: int = 3) -> List[Article]:
    if not article.category:
        return []
    stmt = (
        select(Article)
        .where(Article.status == PUBLISHED, Article.category == article.category, Article.id != article.id)
        .order_by(desc(Article.published_at))
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())
