"""
Crawler schedule data model.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.src.core.database import Base


class CrawlerSchedule(Base):
    """Recurring crawl configuration; at most one row per category."""

    __tablename__ = "crawler_schedules"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    category: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)

    # Recurrence
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    cron_expression: Mapped[str] = mapped_column(String(120), nullable=False)
    interval_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Run bookkeeping
    last_run_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    next_run_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<CrawlerSchedule(category={self.category}, enabled={self.is_enabled}, "
            f"cron={self.cron_expression})>"
        )
