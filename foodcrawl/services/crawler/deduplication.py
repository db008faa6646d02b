import logging

from foodcrawl.services.store.base import DocumentStore, equal

logger = logging.getLogger("foodcrawl.crawler.deduplication")

BATCH_QUERY_SIZE = 25


def _bigrams(text: str) -> set[str]:
    return {text[i : i + 2] for i in range(len(text) - 1)}


def dice_coefficient(a: str, b: str) -> float:
    """Bigram Dice coefficient of two strings, in [0, 1]."""
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0
    left, right = _bigrams(a), _bigrams(b)
    return 2 * len(left & right) / (len(left) + len(right))


class DeduplicationService:
    """Decide whether an EAN is already in the moderation queue.

    A bounded, insertion-ordered session cache answers repeat lookups within
    one run; misses go to the submissions collection, which stays the source
    of truth. When the cache is full the oldest ~10% of entries are dropped.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        cache_size: int = 1000,
        similarity_threshold: float = 0.8,
    ):
        self.store = store
        self.collection = collection
        self.cache_size = cache_size
        self.similarity_threshold = similarity_threshold
        # insertion-ordered, oldest first
        self._cache: dict[str, None] = {}

    async def is_duplicate(self, external_id: str | None) -> bool:
        """Store errors propagate: the caller must not treat a failed lookup as new."""
        if not external_id:
            return False
        if external_id in self._cache:
            return True

        docs = await self.store.list_documents(
            self.collection, [equal("external_id", external_id)], limit=1
        )
        if docs:
            self.add_to_cache(external_id)
            return True
        return False

    async def batch_check_duplicates(self, external_ids: list[str]) -> dict[str, bool]:
        result: dict[str, bool] = {}
        uncached: list[str] = []
        for ean in external_ids:
            if not ean or ean in result:
                continue
            if ean in self._cache:
                result[ean] = True
            else:
                result[ean] = False
                uncached.append(ean)

        for start in range(0, len(uncached), BATCH_QUERY_SIZE):
            chunk = uncached[start : start + BATCH_QUERY_SIZE]
            docs = await self.store.list_documents(
                self.collection, [equal("external_id", chunk)], limit=100
            )
            for doc in docs:
                ean = doc.get("external_id")
                if ean in result:
                    result[ean] = True
                    self.add_to_cache(ean)
        return result

    def add_to_cache(self, external_id: str | None) -> None:
        if not external_id:
            return
        if external_id in self._cache:
            return
        if len(self._cache) >= self.cache_size:
            evict = max(self.cache_size // 10, 1)
            for key in list(self._cache)[:evict]:
                del self._cache[key]
        self._cache[external_id] = None

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict:
        return {"size": len(self._cache), "max_size": self.cache_size}

    async def find_similar_products(self, name: str | None, brand: str | None) -> list[dict]:
        """Same-brand submissions with a near-identical name. Advisory only."""
        if not name:
            return []
        filters = [equal("brand", brand)] if brand else []
        docs = await self.store.list_documents(self.collection, filters, limit=10)
        target = name.lower()
        return [
            doc
            for doc in docs
            if dice_coefficient(target, (doc.get("name") or "").lower())
            > self.similarity_threshold
        ]
