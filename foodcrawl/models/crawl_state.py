from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from foodcrawl.database import Base


class CrawlStateRecord(Base):
    """Singleton row holding the resumable crawl cursor."""

    __tablename__ = "crawl_state"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    active_source: Mapped[str] = mapped_column(String(50), nullable=False)
    source_cursor: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql")
    )
    last_seen_external_id: Mapped[str | None] = mapped_column(Text)
    last_seen_url: Mapped[str | None] = mapped_column(Text)
    total_processed: Mapped[int] = mapped_column(Integer, default=0)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_error: Mapped[str | None] = mapped_column(Text)
    last_error_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    statistics: Mapped[str | None] = mapped_column(Text)  # opaque JSON blob
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
