"""
Crawl Execution Log data model.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from backend.src.core.database import Base

CRAWL_STATUS_RUNNING = "running"
CRAWL_STATUS_SUCCESS = "success"
CRAWL_STATUS_PARTIAL = "partial_success"
CRAWL_STATUS_FAILED = "failed"


class CrawlExecutionLog(Base):
    """One reconciliation cycle for one category."""

    __tablename__ = "crawl_execution_logs"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    category: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    # Execution timing
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        index=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Status and metrics
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    items_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sold_out_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_batches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Error details
    error_details: Mapped[Dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
    )

    triggered_by: Mapped[str] = mapped_column(String(50), nullable=False)

    def __repr__(self) -> str:
        return f"<CrawlExecutionLog(id={self.id}, category={self.category}, status={self.status})>"
