from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from thornton_events.db import get_db
from thornton_events.services.articles import (
    ArticleIn,
    get_published,
    list_published,
    record_view,
    related_articles,
    save_article,
)

router = APIRouter(prefix="/articles", tags=["articles"])


# ---------- Schemas ----------
class ArticleOut(BaseModel):
    id: int
    slug: str
    title: str
    subtitle: Optional[str] = None
    excerpt: Optional[str] = None
    content: str
    category: Optional[str] = None
    tags: List[str] = []
    author_name: str
    status: str
    featured: bool
    featured_image_url: Optional[str] = None
    view_count: int
    published_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ArticleDetail(BaseModel):
    article: ArticleOut
    related: List[ArticleOut] = []


class SaveResult(BaseModel):
    success: bool = True
    article: ArticleOut
    message: str


# ---------- Routes ----------
@router.get("", response_model=List[ArticleOut])
async def list_articles(
    category: Optional[str] = None,
    limit: int = Query(100, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    return await list_published(db, category=category, limit=limit)


@router.get("/{slug}", response_model=ArticleDetail)
async def get_article(slug: str, db: AsyncSession = Depends(get_db)):
    row = await get_published(db, slug)
    if not row:
        raise HTTPException(status_code=404, detail="Article not found")
    await record_view(db, row.id)
    await db.refresh(row)
    return {"article": row, "related": await related_articles(db, row)}


@router.post("", response_model=SaveResult, status_code=201)
async def create_article(payload: ArticleIn, db: AsyncSession = Depends(get_db)):
    row = await save_article(db, payload)
    msg = "Article published successfully!" if row.status == "published" else "Article saved as draft!"
    return {"article": row, "message": msg}
