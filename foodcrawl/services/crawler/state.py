import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from foodcrawl.services.crawler.rotation import ROTATION, Source, first_source, parse_source
from foodcrawl.services.store.base import DocumentNotFound, DocumentStore, StoreError

logger = logging.getLogger("foodcrawl.crawler.state")

OUTCOMES = ("persisted", "duplicates", "invalid", "errors")


class StatePersistenceError(Exception):
    """The crawl cursor could not be written; the run must stop."""


def default_statistics() -> dict:
    return {
        "totalProducts": 0,
        "bySource": {s.value: 0 for s in ROTATION},
        "byOutcome": {o: 0 for o in OUTCOMES},
    }


@dataclass
class CrawlState:
    active_source: Source = field(default_factory=first_source)
    source_cursor: dict[str, int] = field(
        default_factory=lambda: {s.value: 1 for s in ROTATION}
    )
    last_seen_external_id: str | None = None
    last_seen_url: str | None = None
    total_processed: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None
    last_error_at: datetime | None = None
    statistics: dict = field(default_factory=default_statistics)

    def cursor(self, source: Source) -> int:
        return self.source_cursor.get(source.value, 1)

    def advance_cursor(self, source: Source, next_cursor: int) -> None:
        # never move backwards unless reset_source() is used
        if next_cursor > self.cursor(source):
            self.source_cursor[source.value] = next_cursor

    def clear_transient(self) -> None:
        self.last_seen_external_id = None
        self.last_seen_url = None

    def record_error(self, message: str) -> None:
        self.last_error = message
        self.last_error_at = datetime.now(timezone.utc)

    def count(self, outcome: str, source: Source | None = None) -> None:
        by_outcome = self.statistics.setdefault("byOutcome", {})
        by_outcome[outcome] = by_outcome.get(outcome, 0) + 1
        if outcome == "persisted":
            self.total_processed += 1
            self.statistics["totalProducts"] = self.statistics.get("totalProducts", 0) + 1
            if source is not None:
                by_source = self.statistics.setdefault("bySource", {})
                by_source[source.value] = by_source.get(source.value, 0) + 1

    def to_document(self) -> dict:
        return {
            "active_source": self.active_source.value,
            "source_cursor": dict(self.source_cursor),
            "last_seen_external_id": self.last_seen_external_id,
            "last_seen_url": self.last_seen_url,
            "total_processed": self.total_processed,
            "last_run_at": self.last_run_at,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at,
            "statistics": json.dumps(self.statistics),
        }

    @classmethod
    def from_document(cls, doc: dict) -> "CrawlState":
        state = cls()
        stored = doc.get("active_source")
        state.active_source = parse_source(stored)
        if stored and stored != state.active_source.value:
            logger.warning(
                "Unknown active source %r in crawl state, using %s",
                stored,
                state.active_source.value,
            )

        for key, value in (doc.get("source_cursor") or {}).items():
            try:
                state.source_cursor[key] = max(int(value), 1)
            except (TypeError, ValueError):
                logger.warning("Ignoring bad cursor %r for source %s", value, key)

        state.last_seen_external_id = doc.get("last_seen_external_id")
        state.last_seen_url = doc.get("last_seen_url")
        state.total_processed = int(doc.get("total_processed") or 0)
        state.last_run_at = doc.get("last_run_at")
        state.last_error = doc.get("last_error")
        state.last_error_at = doc.get("last_error_at")

        raw_stats = doc.get("statistics")
        if isinstance(raw_stats, str) and raw_stats:
            try:
                state.statistics = json.loads(raw_stats)
            except json.JSONDecodeError:
                logger.warning("Corrupt statistics blob in crawl state, resetting it")
        elif isinstance(raw_stats, dict):
            state.statistics = raw_stats
        return state


class CrawlStateStore:
    """Load and save the singleton crawl-state document.

    Concurrent crawl processes are not supported; if two ever run at once the
    last save wins.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        document_id: str,
        submissions_collection: str | None = None,
    ):
        self.store = store
        self.collection = collection
        self.document_id = document_id
        self.submissions_collection = submissions_collection

    async def load(self) -> CrawlState:
        try:
            doc = await self.store.get_document(self.collection, self.document_id)
        except DocumentNotFound:
            logger.info("No crawl state found, starting fresh")
            return CrawlState()
        logger.info("Loaded crawl state (source=%s)", doc.get("active_source"))
        return CrawlState.from_document(doc)

    async def save(self, state: CrawlState) -> None:
        fields = state.to_document()
        try:
            try:
                await self.store.update_document(self.collection, self.document_id, fields)
            except DocumentNotFound:
                await self.store.create_document(self.collection, self.document_id, fields)
                logger.info("Crawl state created")
        except StoreError as e:
            raise StatePersistenceError(f"Saving crawl state failed: {e}") from e

    async def reset_source(
        self, source: Source, full: bool = False, make_active: bool = False
    ) -> CrawlState:
        """Rewind one source's page cursor. ``full`` rewinds every source."""
        state = await self.load()
        targets = ROTATION if full else (source,)
        for s in targets:
            state.source_cursor[s.value] = 1
        state.clear_transient()
        if make_active:
            state.active_source = source
        await self.save(state)
        logger.info("Reset crawl cursor for %s", ", ".join(s.value for s in targets))
        return state

    async def update_statistics(self, **stats) -> CrawlState:
        state = await self.load()
        state.statistics.update(stats)
        state.statistics["lastUpdated"] = datetime.now(timezone.utc).isoformat()
        await self.save(state)
        return state

    async def get_crawl_history(self, limit: int = 10) -> list[dict]:
        """Recent submissions grouped by crawl session, newest first."""
        if not self.submissions_collection:
            return []
        docs = await self.store.list_documents(
            self.submissions_collection, limit=limit, order_desc="submitted_at"
        )
        sessions: dict[str, dict] = {}
        for doc in docs:
            session_id = doc.get("crawl_session_id") or "unknown"
            submitted = doc.get("submitted_at")
            entry = sessions.setdefault(
                session_id,
                {
                    "session_id": session_id,
                    "count": 0,
                    "first_product": submitted,
                    "last_product": submitted,
                    "products": [],
                },
            )
            entry["count"] += 1
            entry["products"].append(
                {
                    "external_id": doc.get("external_id"),
                    "name": doc.get("name"),
                    "brand": doc.get("brand"),
                }
            )
            if submitted is not None:
                if entry["first_product"] is None or submitted < entry["first_product"]:
                    entry["first_product"] = submitted
                if entry["last_product"] is None or submitted > entry["last_product"]:
                    entry["last_product"] = submitted
        return list(sessions.values())
