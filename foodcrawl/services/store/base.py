"""Document store contract used by the crawler.

Two collections are used (submissions and crawl state). Operations:
create, update, get by id and a filtered listing with equality /
membership filters, an optional descending order and a result limit.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class StoreError(Exception):
    """Raised when the backing store fails (connection, constraint, ...)."""


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"Document {doc_id!r} not found in {collection!r}")
        self.collection = collection
        self.doc_id = doc_id


@dataclass(frozen=True)
class Filter:
    field: str
    op: str  # "equal" or "in"
    value: Any


def equal(field: str, value: Any) -> Filter:
    """Equality filter; a list/tuple/set value becomes a membership filter."""
    if isinstance(value, (list, tuple, set, frozenset)):
        return Filter(field, "in", list(value))
    return Filter(field, "equal", value)


class DocumentStore(ABC):
    @abstractmethod
    async def create_document(
        self, collection: str, doc_id: str | None, fields: dict
    ) -> dict:
        """Create a document. A None id lets the store assign one."""
        ...

    @abstractmethod
    async def update_document(self, collection: str, doc_id: str, fields: dict) -> dict:
        """Update fields of an existing document. Raise DocumentNotFound if absent."""
        ...

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> dict:
        """Fetch one document. Raise DocumentNotFound if absent."""
        ...

    @abstractmethod
    async def list_documents(
        self,
        collection: str,
        filters: list[Filter] | None = None,
        limit: int = 25,
        order_desc: str | None = None,
    ) -> list[dict]:
        ...
