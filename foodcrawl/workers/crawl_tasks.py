import asyncio
import logging

from foodcrawl.config import settings
from foodcrawl.workers.celery_app import celery

logger = logging.getLogger("foodcrawl.workers.crawl")


def _run_async(coro):
    """Run an async function from a sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery.task(
    name="foodcrawl.workers.crawl_tasks.run_crawl_session_task",
    time_limit=int(settings.max_runtime_seconds + settings.safety_margin_seconds * 2),
)
def run_crawl_session_task() -> dict:
    """One time-boxed crawl invocation; resumes from the stored crawl state.

    Failures are reported in the returned summary rather than retried: the
    next scheduled run picks up from the last checkpoint anyway.
    """
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    from foodcrawl.services.crawler.orchestrator import run_crawl_session
    from foodcrawl.services.store.sql import SqlDocumentStore

    async def _execute():
        engine = create_async_engine(settings.database_url, pool_size=3)
        session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        try:
            return await run_crawl_session(settings, store=SqlDocumentStore(session_factory))
        finally:
            await engine.dispose()

    summary = _run_async(_execute())
    if summary.success:
        logger.info("Crawl session %s: %s", summary.session_id, summary.message)
    else:
        logger.error("Crawl session %s failed: %s", summary.session_id, summary.message)
    return summary.to_dict()
