from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx


@dataclass
class CandidateProduct:
    """A freshly parsed product, not yet deduplicated or validated."""

    external_id: str | None
    brand: str | None
    name: str | None
    protein: float = 0.0
    fat: float = 0.0
    crude_fiber: float = 0.0
    ash: float = 0.0
    moisture: float = 0.0
    additives: str | None = None
    image_url: str | None = None
    source_name: str = ""
    source_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def macro_sum(self) -> float:
        return self.protein + self.fat + self.crude_fiber + self.ash + self.moisture


class BaseSourceParser(ABC):
    """Fetches one page of one external catalog and normalizes it.

    Parsers hold no state between calls: the page cursor comes in, the
    records and the next cursor go out. The HTTP client is injected.
    """

    source: str  # must be set by subclass

    def __init__(self, client: httpx.AsyncClient, delay_seconds: float = 1.0):
        self.client = client
        self.delay_seconds = delay_seconds

    @abstractmethod
    async def fetch(self, cursor: int, page_size: int) -> tuple[list[CandidateProduct], int]:
        """Return (records, next_cursor) for the page at ``cursor``.

        Raise SourceFetchError when the source could not be reached at all.
        """
        ...

    @staticmethod
    def dedupe_page(records: list[CandidateProduct]) -> list[CandidateProduct]:
        """Collapse records sharing an external id, keeping the first one."""
        seen: set[str] = set()
        unique: list[CandidateProduct] = []
        for record in records:
            if record.external_id:
                if record.external_id in seen:
                    continue
                seen.add(record.external_id)
            unique.append(record)
        return unique
