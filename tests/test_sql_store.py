"""Tests for the SQLAlchemy-backed document store, on a throwaway SQLite file."""

from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import foodcrawl.models  # noqa: F401  registers the tables on Base.metadata
from foodcrawl.database import Base
from foodcrawl.services.crawler.deduplication import DeduplicationService
from foodcrawl.services.crawler.orchestrator import CrawlOrchestrator
from foodcrawl.services.crawler.rotation import Source
from foodcrawl.services.crawler.state import CrawlState, CrawlStateStore
from foodcrawl.services.store.base import DocumentNotFound, StoreError, equal
from foodcrawl.services.store.sql import SqlDocumentStore
from tests.fakes import (
    CRAWL_STATE,
    STATE_ID,
    SUBMISSIONS,
    FakeParser,
    ean13,
    make_product,
)


@pytest.fixture
async def sql_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'foodcrawl.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield SqlDocumentStore(factory)
    await engine.dispose()


def _submission(external_id, brand="Acme", minute=0, session="s1"):
    return {
        "external_id": external_id,
        "brand": brand,
        "name": f"Food {external_id}",
        "protein": 22.0,
        "source": "opff",
        "status": "pending",
        "crawl_session_id": session,
        "submitted_at": datetime(2026, 1, 1, 3, minute, tzinfo=timezone.utc),
    }


async def test_create_assigns_id_and_get_returns_it(sql_store):
    doc = await sql_store.create_document(SUBMISSIONS, None, _submission("4006158026240"))
    assert len(doc["id"]) == 36

    fetched = await sql_store.get_document(SUBMISSIONS, doc["id"])
    assert fetched["external_id"] == "4006158026240"
    assert fetched["status"] == "pending"
    assert fetched["protein"] == 22.0


async def test_get_missing_raises_not_found(sql_store):
    with pytest.raises(DocumentNotFound):
        await sql_store.get_document(CRAWL_STATE, STATE_ID)


async def test_update_missing_raises_not_found(sql_store):
    with pytest.raises(DocumentNotFound):
        await sql_store.update_document(CRAWL_STATE, STATE_ID, {"total_processed": 1})


async def test_list_filters_order_and_limit(sql_store):
    for minute, (ean, brand) in enumerate(
        [("1001", "Acme"), ("1002", "Acme"), ("1003", "Other"), ("1004", "Acme")]
    ):
        await sql_store.create_document(SUBMISSIONS, None, _submission(ean, brand, minute))

    by_id = await sql_store.list_documents(SUBMISSIONS, [equal("external_id", "1002")])
    assert [d["external_id"] for d in by_id] == ["1002"]

    members = await sql_store.list_documents(
        SUBMISSIONS, [equal("external_id", ["1001", "1003", "9999"])], limit=100
    )
    assert sorted(d["external_id"] for d in members) == ["1001", "1003"]

    newest = await sql_store.list_documents(
        SUBMISSIONS, [equal("brand", "Acme")], limit=2, order_desc="submitted_at"
    )
    assert [d["external_id"] for d in newest] == ["1004", "1002"]


async def test_unknown_collection_and_field_raise(sql_store):
    with pytest.raises(StoreError):
        await sql_store.list_documents("reviews")
    with pytest.raises(StoreError):
        await sql_store.list_documents(SUBMISSIONS, [equal("colour", "red")])
    with pytest.raises(StoreError):
        await sql_store.create_document(SUBMISSIONS, None, {"colour": "red"})


async def test_crawl_state_round_trip(sql_store):
    state_store = CrawlStateStore(sql_store, CRAWL_STATE, STATE_ID, SUBMISSIONS)
    state = CrawlState(active_source=Source.FRESSNAPF)
    state.advance_cursor(Source.FRESSNAPF, 6)
    state.count("persisted", Source.FRESSNAPF)
    await state_store.save(state)
    state.advance_cursor(Source.FRESSNAPF, 7)
    await state_store.save(state)

    loaded = await state_store.load()
    assert loaded.active_source is Source.FRESSNAPF
    assert loaded.source_cursor == {"opff": 1, "fressnapf": 7, "zooplus": 1}
    assert loaded.statistics["bySource"]["fressnapf"] == 1
    assert loaded.total_processed == 1


async def test_crawl_history_from_sql(sql_store):
    await sql_store.create_document(SUBMISSIONS, None, _submission("1001", minute=1))
    await sql_store.create_document(SUBMISSIONS, None, _submission("1002", minute=2, session="s2"))
    state_store = CrawlStateStore(sql_store, CRAWL_STATE, STATE_ID, SUBMISSIONS)

    history = await state_store.get_crawl_history(limit=10)

    assert [h["session_id"] for h in history] == ["s2", "s1"]


async def test_two_runs_against_sql_store_do_not_duplicate(sql_store):
    page = [make_product(ean13(f"40000002{i:04d}"), name=f"Food {i}") for i in range(3)]
    state_store = CrawlStateStore(sql_store, CRAWL_STATE, STATE_ID, SUBMISSIONS)

    async def run_once():
        parsers = {s: FakeParser(s) for s in Source}
        parsers[Source.OPFF].pages = {1: page}
        orchestrator = CrawlOrchestrator(
            parsers,
            state_store,
            DeduplicationService(sql_store, SUBMISSIONS),
            sql_store,
            submissions_collection=SUBMISSIONS,
            record_delay=0,
            source_delay=0,
        )
        return await orchestrator.run(3300, 500)

    first = await run_once()
    await state_store.reset_source(Source.OPFF)
    second = await run_once()

    assert first.processed == 3
    assert second.duplicates == 3
    stored = await sql_store.list_documents(SUBMISSIONS, limit=100)
    assert len(stored) == 3
