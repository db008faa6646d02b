"""Tests for the session cache, store fallback and name similarity."""

import pytest

from foodcrawl.services.crawler.deduplication import DeduplicationService, dice_coefficient
from foodcrawl.services.store.base import StoreError
from tests.fakes import SUBMISSIONS, MemoryDocumentStore, ean13


async def _submit(store, external_id, name="Beef Chunks", brand="Acme"):
    await store.create_document(
        SUBMISSIONS, None, {"external_id": external_id, "name": name, "brand": brand}
    )


def test_dice_coefficient():
    assert dice_coefficient("night", "night") == 1.0
    assert dice_coefficient("night", "nacht") == pytest.approx(0.25)
    assert dice_coefficient("a", "ab") == 0.0
    assert dice_coefficient("abc", "xyz") == 0.0


async def test_unknown_ean_is_not_duplicate(store):
    dedup = DeduplicationService(store, SUBMISSIONS)
    assert await dedup.is_duplicate("4006158026240") is False
    assert await dedup.is_duplicate(None) is False


async def test_store_hit_is_cached(store):
    await _submit(store, "4006158026240")
    dedup = DeduplicationService(store, SUBMISSIONS)

    assert await dedup.is_duplicate("4006158026240") is True
    calls = store.list_calls
    assert await dedup.is_duplicate("4006158026240") is True
    assert store.list_calls == calls
    assert dedup.cache_stats() == {"size": 1, "max_size": 1000}


async def test_cached_ean_is_duplicate_without_store(store):
    dedup = DeduplicationService(store, SUBMISSIONS)
    dedup.add_to_cache("4006158026240")
    store.fail_lists = True
    assert await dedup.is_duplicate("4006158026240") is True


async def test_store_error_propagates(store):
    dedup = DeduplicationService(store, SUBMISSIONS)
    store.fail_lists = True
    with pytest.raises(StoreError):
        await dedup.is_duplicate("4006158026240")


def test_cache_evicts_oldest_tenth():
    dedup = DeduplicationService(MemoryDocumentStore(), SUBMISSIONS, cache_size=20)
    eans = [ean13(f"40000000{i:04d}") for i in range(21)]
    for ean in eans:
        dedup.add_to_cache(ean)

    assert dedup.cache_stats()["size"] == 19
    assert eans[0] not in dedup._cache
    assert eans[1] not in dedup._cache
    assert eans[2] in dedup._cache
    assert eans[20] in dedup._cache


def test_cache_never_exceeds_bound():
    dedup = DeduplicationService(MemoryDocumentStore(), SUBMISSIONS, cache_size=5)
    for i in range(50):
        dedup.add_to_cache(str(10_000_000 + i))
        assert dedup.cache_stats()["size"] <= 5


def test_clear_cache():
    dedup = DeduplicationService(MemoryDocumentStore(), SUBMISSIONS)
    dedup.add_to_cache("4006158026240")
    dedup.clear_cache()
    assert dedup.cache_stats()["size"] == 0


async def test_batch_check_queries_in_chunks(store):
    eans = [ean13(f"40000000{i:04d}") for i in range(60)]
    for ean in eans[::7]:
        await _submit(store, ean)
    dedup = DeduplicationService(store, SUBMISSIONS)
    dedup.add_to_cache(eans[1])

    result = await dedup.batch_check_duplicates(eans + [eans[0], ""])

    assert set(result) == set(eans)
    assert [e for e in eans if result[e]] == sorted(set(eans[::7]) | {eans[1]}, key=eans.index)
    # 59 uncached ids in chunks of 25
    assert store.list_calls == 3
    # hits are now cached
    assert await dedup.is_duplicate(eans[7]) is True
    assert store.list_calls == 3


async def test_batch_check_store_error_propagates(store):
    dedup = DeduplicationService(store, SUBMISSIONS)
    store.fail_lists = True
    with pytest.raises(StoreError):
        await dedup.batch_check_duplicates(["4006158026240"])


async def test_find_similar_products(store):
    await _submit(store, "1", name="Adult Beef & Rice", brand="Acme")
    await _submit(store, "2", name="Adult Beef and Rice", brand="Acme")
    await _submit(store, "3", name="Puppy Lamb", brand="Acme")
    await _submit(store, "4", name="Adult Beef & Rice", brand="Other")
    dedup = DeduplicationService(store, SUBMISSIONS)

    similar = await dedup.find_similar_products("adult beef & rice", "Acme")

    assert [d["external_id"] for d in similar] == ["1", "2"]
    assert await dedup.find_similar_products("", "Acme") == []
