"""Tests for the persisted crawl state document."""

import json
from datetime import datetime, timezone

import pytest

from foodcrawl.services.crawler.rotation import Source
from foodcrawl.services.crawler.state import (
    CrawlState,
    StatePersistenceError,
    default_statistics,
)
from tests.fakes import CRAWL_STATE, STATE_ID, SUBMISSIONS


async def test_load_without_document_returns_fresh_state(state_store, store):
    state = await state_store.load()
    assert state.active_source is Source.OPFF
    assert state.source_cursor == {"opff": 1, "fressnapf": 1, "zooplus": 1}
    assert state.total_processed == 0
    assert state.statistics == default_statistics()
    assert store.writes == 0


async def test_save_creates_then_updates(state_store, store):
    state = await state_store.load()
    state.active_source = Source.ZOOPLUS
    state.advance_cursor(Source.ZOOPLUS, 4)
    await state_store.save(state)
    assert list(store.collections[CRAWL_STATE]) == [STATE_ID]

    state.count("persisted", Source.ZOOPLUS)
    await state_store.save(state)
    assert len(store.collections[CRAWL_STATE]) == 1

    loaded = await state_store.load()
    assert loaded.active_source is Source.ZOOPLUS
    assert loaded.cursor(Source.ZOOPLUS) == 4
    assert loaded.total_processed == 1
    assert loaded.statistics["bySource"]["zooplus"] == 1
    assert loaded.statistics["byOutcome"]["persisted"] == 1


async def test_statistics_are_stored_as_json_text(state_store, store):
    await state_store.save(CrawlState())
    raw = store.collections[CRAWL_STATE][STATE_ID]["statistics"]
    assert json.loads(raw) == default_statistics()


async def test_save_failure_raises_persistence_error(state_store, store):
    store.fail_writes.add(CRAWL_STATE)
    with pytest.raises(StatePersistenceError):
        await state_store.save(CrawlState())


def test_cursor_never_moves_backwards():
    state = CrawlState()
    state.advance_cursor(Source.OPFF, 5)
    state.advance_cursor(Source.OPFF, 3)
    assert state.cursor(Source.OPFF) == 5


def test_from_document_tolerates_bad_fields():
    state = CrawlState.from_document(
        {
            "active_source": "petshop",
            "source_cursor": {"opff": "3", "zooplus": "x", "fressnapf": 0},
            "statistics": "{not json",
            "total_processed": None,
        }
    )
    assert state.active_source is Source.OPFF
    assert state.source_cursor == {"opff": 3, "fressnapf": 1, "zooplus": 1}
    assert state.statistics == default_statistics()
    assert state.total_processed == 0


def test_record_error_sets_timestamp():
    state = CrawlState()
    state.record_error("opff: HTTP 503")
    assert state.last_error == "opff: HTTP 503"
    assert state.last_error_at is not None


async def test_reset_single_source(state_store):
    state = CrawlState(active_source=Source.FRESSNAPF)
    state.source_cursor.update({"opff": 9, "fressnapf": 4, "zooplus": 2})
    state.last_seen_external_id = "4006158026240"
    await state_store.save(state)

    reset = await state_store.reset_source(Source.FRESSNAPF)

    assert reset.source_cursor == {"opff": 9, "fressnapf": 1, "zooplus": 2}
    assert reset.active_source is Source.FRESSNAPF
    assert reset.last_seen_external_id is None
    assert (await state_store.load()).cursor(Source.FRESSNAPF) == 1


async def test_full_reset_and_activate(state_store):
    state = CrawlState()
    state.source_cursor.update({"opff": 9, "fressnapf": 4, "zooplus": 2})
    await state_store.save(state)

    reset = await state_store.reset_source(Source.ZOOPLUS, full=True, make_active=True)

    assert reset.source_cursor == {"opff": 1, "fressnapf": 1, "zooplus": 1}
    assert reset.active_source is Source.ZOOPLUS


async def test_update_statistics_merges(state_store):
    state = await state_store.update_statistics(lastSession="abc")
    assert state.statistics["lastSession"] == "abc"
    assert "lastUpdated" in state.statistics
    assert (await state_store.load()).statistics["totalProducts"] == 0


async def test_crawl_history_groups_by_session(state_store, store):
    for minute, session, ean in [(1, "s1", "1"), (2, "s1", "2"), (3, "s2", "3")]:
        await store.create_document(
            SUBMISSIONS,
            None,
            {
                "external_id": ean,
                "name": f"Food {ean}",
                "brand": "Acme",
                "crawl_session_id": session,
                "submitted_at": datetime(2026, 1, 1, 3, minute, tzinfo=timezone.utc),
            },
        )

    history = await state_store.get_crawl_history()

    assert [h["session_id"] for h in history] == ["s2", "s1"]
    s1 = history[1]
    assert s1["count"] == 2
    assert s1["first_product"].minute == 1
    assert s1["last_product"].minute == 2
    assert {p["external_id"] for p in s1["products"]} == {"1", "2"}
