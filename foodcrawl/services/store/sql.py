import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from foodcrawl.config import settings
from foodcrawl.database import Base
from foodcrawl.models.crawl_state import CrawlStateRecord
from foodcrawl.models.submission import Submission
from foodcrawl.services.store.base import DocumentNotFound, DocumentStore, Filter, StoreError

logger = logging.getLogger("foodcrawl.store.sql")


def default_collections() -> dict[str, type[Base]]:
    return {
        settings.submissions_collection: Submission,
        settings.crawl_state_collection: CrawlStateRecord,
    }


def _to_document(row: Base) -> dict:
    return {col.name: getattr(row, col.name) for col in row.__table__.columns}


class SqlDocumentStore(DocumentStore):
    """DocumentStore backed by SQLAlchemy ORM models, one table per collection."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collections: dict[str, type[Base]] | None = None,
    ):
        self._session_factory = session_factory
        self._collections = collections or default_collections()

    def _model(self, collection: str) -> type[Base]:
        model = self._collections.get(collection)
        if model is None:
            raise StoreError(
                f"Unknown collection: {collection}. Available: {list(self._collections)}"
            )
        return model

    def _column(self, model: type[Base], field: str):
        if field not in model.__table__.columns:
            raise StoreError(f"Unknown field {field!r} on {model.__tablename__}")
        return getattr(model, field)

    async def create_document(
        self, collection: str, doc_id: str | None, fields: dict
    ) -> dict:
        model = self._model(collection)
        for key in fields:
            self._column(model, key)
        row = model(id=doc_id or str(uuid.uuid4()), **fields)
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return _to_document(row)
        except SQLAlchemyError as e:
            raise StoreError(f"create in {collection} failed: {e}") from e

    async def update_document(self, collection: str, doc_id: str, fields: dict) -> dict:
        model = self._model(collection)
        try:
            async with self._session_factory() as session:
                row = await session.get(model, doc_id)
                if row is None:
                    raise DocumentNotFound(collection, doc_id)
                for key, value in fields.items():
                    self._column(model, key)
                    setattr(row, key, value)
                await session.commit()
                await session.refresh(row)
                return _to_document(row)
        except SQLAlchemyError as e:
            raise StoreError(f"update of {collection}/{doc_id} failed: {e}") from e

    async def get_document(self, collection: str, doc_id: str) -> dict:
        model = self._model(collection)
        try:
            async with self._session_factory() as session:
                row = await session.get(model, doc_id)
        except SQLAlchemyError as e:
            raise StoreError(f"get of {collection}/{doc_id} failed: {e}") from e
        if row is None:
            raise DocumentNotFound(collection, doc_id)
        return _to_document(row)

    async def list_documents(
        self,
        collection: str,
        filters: list[Filter] | None = None,
        limit: int = 25,
        order_desc: str | None = None,
    ) -> list[dict]:
        model = self._model(collection)
        query = select(model)
        for f in filters or []:
            column = self._column(model, f.field)
            if f.op == "in":
                query = query.where(column.in_(f.value))
            elif f.op == "equal":
                query = query.where(column == f.value)
            else:
                raise StoreError(f"Unsupported filter op: {f.op}")
        if order_desc:
            query = query.order_by(self._column(model, order_desc).desc())
        query = query.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise StoreError(f"list of {collection} failed: {e}") from e
        return [_to_document(row) for row in rows]
