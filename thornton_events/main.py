import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from thornton_events.db import create_all, engine
from thornton_events.routes.articles import router as articles_router
from thornton_events.routes.deals import router as deals_router
from thornton_events.routes.events import router as events_router
from thornton_events.utils.config import CORS_ORIGINS

log = logging.getLogger(__name__)

app = FastAPI(title="Thornton Events")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health")
async def health():
    return {"status": "ok"}

app.include_router(events_router)
app.include_router(deals_router)
app.include_router(articles_router)

@app.on_event("startup")
async def on_startup():
    # Create tables (dev-only); production schema comes from alembic
    await create_all(engine)
