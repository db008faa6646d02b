from fastapi import Depends

from foodcrawl.config import settings
from foodcrawl.database import async_session_factory
from foodcrawl.services.crawler.deduplication import DeduplicationService
from foodcrawl.services.crawler.state import CrawlStateStore
from foodcrawl.services.store.base import DocumentStore
from foodcrawl.services.store.sql import SqlDocumentStore


def get_store() -> DocumentStore:
    return SqlDocumentStore(async_session_factory)


def get_state_store(store: DocumentStore = Depends(get_store)) -> CrawlStateStore:
    return CrawlStateStore(
        store,
        settings.crawl_state_collection,
        settings.crawl_state_document_id,
        submissions_collection=settings.submissions_collection,
    )


def get_dedup(store: DocumentStore = Depends(get_store)) -> DeduplicationService:
    return DeduplicationService(
        store,
        settings.submissions_collection,
        cache_size=settings.dedup_cache_size,
        similarity_threshold=settings.similarity_threshold,
    )
