"""
Task execution log entity model.

Append-only history of favorite monitor polling outcomes.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.src.core.database import Base

if TYPE_CHECKING:
    from backend.src.models.monitor_task import FavoriteMonitorTask


class TaskLogStatus(str, Enum):
    """Outcome of one polling attempt."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    NOTIFIED = "NOTIFIED"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    NO_RECIPIENT = "NO_RECIPIENT"


class TaskExecutionLog(Base):
    """
    Task execution log entity.

    Rows are never updated or deleted by the monitor; they are read back to
    rebuild recent history.

    Attributes:
        id: Row identifier
        task_id: Monitor task that produced the entry
        status: One of TaskLogStatus
        message: Free-text detail
        timestamp: When the attempt finished
    """

    __tablename__ = "task_logs"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Foreign keys
    task_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("monitor_tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(String(16), nullable=False)

    message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        index=True,
    )

    # Relationships
    task: Mapped["FavoriteMonitorTask"] = relationship(
        "FavoriteMonitorTask",
        back_populates="logs",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<TaskExecutionLog(id={self.id}, task_id={self.task_id}, status={self.status})>"


# Export
__all__ = ["TaskExecutionLog", "TaskLogStatus"]
