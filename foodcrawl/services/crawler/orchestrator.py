import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

from foodcrawl.config import Settings, settings
from foodcrawl.services.crawler.base import BaseSourceParser, CandidateProduct
from foodcrawl.services.crawler.deduplication import DeduplicationService
from foodcrawl.services.crawler.fressnapf import FressnapfParser
from foodcrawl.services.crawler.openpetfoodfacts import OpenPetFoodFactsParser
from foodcrawl.services.crawler.rotation import ROTATION, Source, next_source
from foodcrawl.services.crawler.state import CrawlState, CrawlStateStore, StatePersistenceError
from foodcrawl.services.crawler.validator import ProductValidator
from foodcrawl.services.crawler.zooplus import ZooplusParser
from foodcrawl.services.store.base import DocumentStore, StoreError
from foodcrawl.utils.http import SourceFetchError, create_client

logger = logging.getLogger("foodcrawl.crawler.orchestrator")

# Registry of available source parsers
PARSERS: dict[Source, type[BaseSourceParser]] = {
    Source.OPFF: OpenPetFoodFactsParser,
    Source.FRESSNAPF: FressnapfParser,
    Source.ZOOPLUS: ZooplusParser,
}


def get_parser(source: Source, client: httpx.AsyncClient, delay_seconds: float) -> BaseSourceParser:
    parser_cls = PARSERS.get(source)
    if not parser_cls:
        raise ValueError(f"Unknown source: {source}. Available: {[s.value for s in PARSERS]}")
    return parser_cls(client, delay_seconds=delay_seconds)


@dataclass
class RunSummary:
    success: bool
    session_id: str
    duration_ms: int = 0
    processed: int = 0
    duplicates: int = 0
    errors: int = 0
    message: str = ""
    by_source: dict[str, int] = field(default_factory=dict)
    stop_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "sessionId": self.session_id,
            "durationMs": self.duration_ms,
            "processed": self.processed,
            "duplicates": self.duplicates,
            "errors": self.errors,
            "message": self.message,
            "bySource": dict(self.by_source),
            "stopReason": self.stop_reason,
        }


@dataclass
class _RunCounters:
    processed: int = 0
    duplicates: int = 0
    errors: int = 0
    by_source: dict[str, int] = field(default_factory=dict)
    empty_streak: int = 0
    fetch_failures: dict[str, int] = field(default_factory=dict)


class CrawlOrchestrator:
    """Time-boxed crawl loop over the rotating sources.

    Each iteration fetches one page from the active source and runs every
    record through dedup -> validate -> persist, strictly one after the
    other. The loop stops before starting new work once the remaining
    budget drops under the safety margin, when the product cap is hit, or
    when every source came back empty in a row. The page cursor only moves
    once a page has been fully processed, so a page cut short by the budget
    is fetched again next run and its stored records show up as duplicates.
    """

    def __init__(
        self,
        parsers: dict[Source, BaseSourceParser],
        state_store: CrawlStateStore,
        dedup: DeduplicationService,
        store: DocumentStore,
        *,
        submissions_collection: str,
        session_id: str | None = None,
        validator: ProductValidator | None = None,
        system_user_id: str | None = None,
        page_sizes: dict[Source, int] | None = None,
        safety_margin: float = 60.0,
        checkpoint_every: int = 10,
        record_delay: float = 0.5,
        source_delay: float = 1.0,
        max_source_failures: int = 3,
        order: tuple[Source, ...] = ROTATION,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.parsers = parsers
        self.state_store = state_store
        self.dedup = dedup
        self.store = store
        self.submissions_collection = submissions_collection
        self.session_id = session_id or str(uuid.uuid4())
        self.validator = validator or ProductValidator()
        self.system_user_id = system_user_id
        self.page_sizes = page_sizes or {}
        self.safety_margin = safety_margin
        self.checkpoint_every = max(checkpoint_every, 1)
        self.record_delay = record_delay
        self.source_delay = source_delay
        self.max_source_failures = max(max_source_failures, 1)
        self.order = order
        self.clock = clock
        self.sleep = sleep
        self._started = 0.0

    async def run(self, time_budget: float, max_products: int) -> RunSummary:
        self._started = self.clock()
        counters = _RunCounters()
        logger.info(
            "Starting crawl session %s (budget=%.0fs, max_products=%d)",
            self.session_id,
            time_budget,
            max_products,
        )

        try:
            state = await self.state_store.load()
        except StoreError as e:
            logger.error("Could not load crawl state: %s", e)
            return self._summary(counters, False, "state_error", f"Could not load crawl state: {e}")

        worked = False
        stop_reason = None
        try:
            while True:
                stop_reason = self._stop_reason(time_budget, max_products, counters)
                if stop_reason:
                    break
                worked = True
                await self._crawl_iteration(state, counters, time_budget, max_products)

                # Pause between source-level iterations
                if not self._stop_reason(time_budget, max_products, counters):
                    await self.sleep(self.source_delay)

        except StatePersistenceError as e:
            logger.error("Crawl session %s aborted, state not saved: %s", self.session_id, e)
            state.record_error(str(e))
            try:
                await self.state_store.save(state)
            except StatePersistenceError as final_error:
                logger.error("Final state save failed too: %s", final_error)
            return self._summary(counters, False, "state_error", f"Crawl state could not be saved: {e}")

        if worked:
            state.last_run_at = datetime.now(timezone.utc)
            try:
                await self.state_store.save(state)
            except StatePersistenceError as e:
                logger.error("Final state save failed: %s", e)
                return self._summary(counters, False, "state_error", f"Crawl state could not be saved: {e}")

        summary = self._summary(
            counters,
            True,
            stop_reason,
            f"Successfully processed {counters.processed} products "
            f"({counters.duplicates} duplicates, {counters.errors} errors)",
        )
        logger.info(
            "Crawl session %s completed in %ds: processed=%d duplicates=%d errors=%d stop=%s",
            self.session_id,
            summary.duration_ms // 1000,
            summary.processed,
            summary.duplicates,
            summary.errors,
            stop_reason,
        )
        return summary

    def _remaining(self, time_budget: float) -> float:
        return time_budget - (self.clock() - self._started)

    def _stop_reason(
        self, time_budget: float, max_products: int, counters: _RunCounters
    ) -> str | None:
        if self._remaining(time_budget) < self.safety_margin:
            return "time_budget"
        if counters.processed >= max_products:
            return "product_cap"
        if counters.empty_streak >= len(self.order):
            return "sources_exhausted"
        return None

    async def _crawl_iteration(
        self,
        state: CrawlState,
        counters: _RunCounters,
        time_budget: float,
        max_products: int,
    ) -> None:
        source = state.active_source
        parser = self.parsers.get(source)
        if parser is None:
            logger.warning("No parser configured for %s, skipping it", source.value)
            self._rotate(state, source)
            counters.empty_streak += 1
            return

        cursor = state.cursor(source)
        # a fetch may use up the safety margin but never runs past the budget
        timeout = self._remaining(time_budget)
        try:
            records, next_cursor = await asyncio.wait_for(
                parser.fetch(cursor, self.page_sizes.get(source, 20)), timeout
            )
        except SourceFetchError as e:
            self._record_fetch_failure(state, counters, source, str(e))
            return
        except asyncio.TimeoutError:
            self._record_fetch_failure(
                state, counters, source, f"page {cursor} timed out after {timeout:.0f}s"
            )
            return
        except Exception as e:
            logger.exception("Parser for %s raised unexpectedly", source.value)
            self._record_fetch_failure(
                state, counters, source, f"unexpected {type(e).__name__}: {e}"
            )
            return

        logger.info("Fetched %d products from %s page %d", len(records), source.value, cursor)

        if not records:
            counters.fetch_failures[source.value] = 0
            counters.empty_streak += 1
            state.advance_cursor(source, next_cursor)
            self._rotate(state, source)
            return

        counters.empty_streak = 0
        await self._prewarm_cache(records)

        if not await self._process_page(state, source, records, counters, time_budget, max_products):
            return
        if next_cursor > cursor:
            counters.fetch_failures[source.value] = 0
            state.advance_cursor(source, next_cursor)
        else:
            # the parser could not load the whole page; it is fetched again
            self._record_fetch_failure(
                state, counters, source, f"page {cursor} incomplete, will be fetched again"
            )

    def _rotate(self, state: CrawlState, source: Source) -> None:
        new_source = next_source(source, True, self.order)
        logger.info("No more products from %s, switching to %s", source.value, new_source.value)
        state.active_source = new_source
        state.clear_transient()

    def _record_fetch_failure(
        self,
        state: CrawlState,
        counters: _RunCounters,
        source: Source,
        message: str,
    ) -> None:
        logger.error("Fetching %s page %d failed: %s", source.value, state.cursor(source), message)
        state.record_error(f"{source.value}: {message}")
        failures = counters.fetch_failures.get(source.value, 0) + 1
        counters.fetch_failures[source.value] = failures
        if failures >= self.max_source_failures:
            logger.warning("%s failed %d times in a row, rotating away", source.value, failures)
            counters.fetch_failures[source.value] = 0
            counters.empty_streak += 1
            self._rotate(state, source)

    async def _prewarm_cache(self, records: list[CandidateProduct]) -> None:
        ids = [r.external_id for r in records if r.external_id]
        if not ids:
            return
        try:
            await self.dedup.batch_check_duplicates(ids)
        except StoreError as e:
            # per-record checks still hit the store
            logger.warning("Batch duplicate check failed: %s", e)

    async def _process_page(
        self,
        state: CrawlState,
        source: Source,
        records: list[CandidateProduct],
        counters: _RunCounters,
        time_budget: float,
        max_products: int,
    ) -> bool:
        """Run each record to completion in fetch order. False if cut short."""
        for i, record in enumerate(records):
            if i and self.record_delay:
                await self.sleep(self.record_delay)
            stop = self._stop_reason(time_budget, max_products, counters)
            if stop:
                logger.info(
                    "Stopping mid-page on %s (%s), page will be revisited", source.value, stop
                )
                return False
            await self._process_record(state, source, record, counters)
        return True

    async def _process_record(
        self,
        state: CrawlState,
        source: Source,
        record: CandidateProduct,
        counters: _RunCounters,
    ) -> None:
        ean = record.external_id
        if not ean:
            logger.debug("Skipping product without EAN from %s", source.value)
            return

        state.last_seen_external_id = ean
        state.last_seen_url = record.source_url

        try:
            if await self.dedup.is_duplicate(ean):
                counters.duplicates += 1
                state.count("duplicates")
                logger.debug("Duplicate found: %s", ean)
                return

            result = self.validator.validate(record)
            if not result.valid:
                counters.errors += 1
                state.count("invalid")
                logger.info("Validation failed for %s: %s", ean, "; ".join(result.errors))
                return

            await self._persist(source, record)
        except Exception as e:
            counters.errors += 1
            state.count("errors")
            logger.error("Error processing product %s: %s", ean, e)
            return

        self.dedup.add_to_cache(ean)
        counters.processed += 1
        counters.by_source[source.value] = counters.by_source.get(source.value, 0) + 1
        state.count("persisted", source)
        logger.info("Saved product: %s - %s", ean, record.name)

        if counters.processed % self.checkpoint_every == 0:
            await self.state_store.save(state)
            logger.debug("Checkpointed crawl state after %d products", counters.processed)

    async def _persist(self, source: Source, record: CandidateProduct) -> dict:
        fields = {
            "external_id": record.external_id,
            "user_id": self.system_user_id,
            "brand": record.brand,
            "name": record.name,
            "protein": float(record.protein),
            "fat": float(record.fat),
            "crude_fiber": float(record.crude_fiber),
            "ash": float(record.ash),
            "moisture": float(record.moisture),
            "additives": record.additives,
            "image_url": record.image_url,
            "source_url": record.source_url,
            "status": "pending",  # every crawled product needs review
            "submitted_at": datetime.now(timezone.utc),
            "reviewed_at": None,
            "crawl_session_id": self.session_id,
            "source": record.source_name or source.value,
        }
        return await self.store.create_document(self.submissions_collection, None, fields)

    def _summary(
        self, counters: _RunCounters, success: bool, stop_reason: str | None, message: str
    ) -> RunSummary:
        return RunSummary(
            success=success,
            session_id=self.session_id,
            duration_ms=int((self.clock() - self._started) * 1000),
            processed=counters.processed,
            duplicates=counters.duplicates,
            errors=counters.errors,
            message=message,
            by_source=dict(counters.by_source),
            stop_reason=stop_reason,
        )


def build_orchestrator(
    cfg: Settings,
    store: DocumentStore,
    client: httpx.AsyncClient,
    session_id: str | None = None,
) -> CrawlOrchestrator:
    parsers = {
        source: get_parser(source, client, cfg.source_delay_seconds) for source in ROTATION
    }
    state_store = CrawlStateStore(
        store,
        cfg.crawl_state_collection,
        cfg.crawl_state_document_id,
        submissions_collection=cfg.submissions_collection,
    )
    dedup = DeduplicationService(
        store,
        cfg.submissions_collection,
        cache_size=cfg.dedup_cache_size,
        similarity_threshold=cfg.similarity_threshold,
    )
    return CrawlOrchestrator(
        parsers,
        state_store,
        dedup,
        store,
        submissions_collection=cfg.submissions_collection,
        session_id=session_id,
        system_user_id=cfg.system_user_id,
        page_sizes={source: cfg.page_size_for(source.value) for source in ROTATION},
        safety_margin=cfg.safety_margin_seconds,
        checkpoint_every=cfg.checkpoint_every,
        record_delay=cfg.record_delay_seconds,
        source_delay=cfg.source_delay_seconds,
        max_source_failures=cfg.max_source_failures,
    )


async def run_crawl_session(
    cfg: Settings = settings,
    store: DocumentStore | None = None,
    client: httpx.AsyncClient | None = None,
    session_id: str | None = None,
) -> RunSummary:
    """Single invocation of the pipeline: budget and product cap come from settings."""
    if store is None:
        from foodcrawl.database import async_session_factory
        from foodcrawl.services.store.sql import SqlDocumentStore

        store = SqlDocumentStore(async_session_factory)

    owns_client = client is None
    if client is None:
        client = create_client(cfg.user_agent, cfg.request_timeout)

    try:
        orchestrator = build_orchestrator(cfg, store, client, session_id)
        return await orchestrator.run(cfg.max_runtime_seconds, cfg.max_products_per_run)
    finally:
        if owns_client:
            await client.aclose()
