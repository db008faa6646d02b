import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from foodcrawl.config import settings
from foodcrawl.database import engine, get_db

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Shutdown: release pooled DB connections
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Dog food crawler: resumable harvesting of nutrition records into the moderation queue.",
    lifespan=lifespan,
)

# --- Routers ---
from foodcrawl.api.v1 import crawl  # noqa: E402

app.include_router(crawl.router, prefix="/api/v1", tags=["Crawl"])


@app.get("/api/v1/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    db_ok = False
    try:
        await db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        pass

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.app_version,
        "services": {
            "database": "up" if db_ok else "down",
        },
    }
