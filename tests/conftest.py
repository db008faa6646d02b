import pytest

from foodcrawl.services.crawler.base import BaseSourceParser
from foodcrawl.services.crawler.deduplication import DeduplicationService
from foodcrawl.services.crawler.orchestrator import CrawlOrchestrator
from foodcrawl.services.crawler.rotation import ROTATION, Source
from foodcrawl.services.crawler.state import CrawlStateStore
from tests.fakes import (
    CRAWL_STATE,
    STATE_ID,
    SUBMISSIONS,
    FakeClock,
    FakeParser,
    MemoryDocumentStore,
)


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state_store(store):
    return CrawlStateStore(store, CRAWL_STATE, STATE_ID, submissions_collection=SUBMISSIONS)


@pytest.fixture
def make_orchestrator(store, state_store, clock):
    """Build an orchestrator over fake parsers with zero politeness delays."""

    def _make(parsers: dict[Source, BaseSourceParser] | None = None, **kwargs):
        if parsers is None:
            parsers = {s: FakeParser(s) for s in ROTATION}
        options = dict(
            submissions_collection=SUBMISSIONS,
            session_id="session-1",
            system_user_id="system_crawler",
            safety_margin=60.0,
            checkpoint_every=10,
            record_delay=0.0,
            source_delay=0.0,
            clock=clock,
            sleep=clock.sleep,
        )
        options.update(kwargs)
        dedup = options.pop("dedup", None) or DeduplicationService(store, SUBMISSIONS)
        return CrawlOrchestrator(parsers, state_store, dedup, store, **options)

    return _make
