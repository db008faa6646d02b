import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from foodcrawl.database import Base


class Submission(Base):
    __tablename__ = "food_submissions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    external_id: Mapped[str] = mapped_column(String(14), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(64))
    brand: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    protein: Mapped[float] = mapped_column(Float, default=0.0)
    fat: Mapped[float] = mapped_column(Float, default=0.0)
    crude_fiber: Mapped[float] = mapped_column(Float, default=0.0)
    ash: Mapped[float] = mapped_column(Float, default=0.0)
    moisture: Mapped[float] = mapped_column(Float, default=0.0)
    additives: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(String(500))
    source_url: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", index=True
    )  # pending, approved, rejected
    source: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    crawl_session_id: Mapped[str | None] = mapped_column(String(36), index=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
