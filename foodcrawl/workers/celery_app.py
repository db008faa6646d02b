from celery import Celery
from celery.schedules import crontab

from foodcrawl.config import settings

celery = Celery(
    "foodcrawl",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    # One crawl process at a time: the crawl state has a single writer.
    worker_concurrency=1,
    beat_schedule={
        "crawl-nightly": {
            "task": "foodcrawl.workers.crawl_tasks.run_crawl_session_task",
            "schedule": crontab(hour=settings.crawl_schedule_hour, minute=0),
        },
    },
)

# Auto-discover tasks in workers package
celery.autodiscover_tasks(["foodcrawl.workers"])
