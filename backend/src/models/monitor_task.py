"""
Favorite monitor task data model.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.src.core.database import Base

if TYPE_CHECKING:
    from backend.src.models.task_log import TaskExecutionLog
    from backend.src.models.user import User


class FavoriteMonitorTask(Base):
    """
    Periodic stock watch for one favorited variant.

    Attributes:
        user_id: Owner of the favorite
        product_id: Retailer product id (e.g. u0000000066997)
        product_code: 6-digit catalog code shown to users
        color: Watched color ("style" upstream)
        size: Watched size
        target_price: Informational only, never used as a trigger
        frequency_seconds: Poll interval
        is_active: Whether the monitor should be running
        window_start: Daily window start (HH:MM), may wrap past midnight
        window_end: Daily window end (HH:MM)
        last_push_time: Last successful back-in-stock push
    """

    __tablename__ = "monitor_tasks"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "color", "size", name="uq_monitor_task_variant"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Foreign keys
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Watched variant
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    product_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    size: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    target_price: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Polling configuration
    frequency_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    window_start: Mapped[str | None] = mapped_column(String(5), nullable=True)
    window_end: Mapped[str | None] = mapped_column(String(5), nullable=True)

    # Throttle state
    last_push_time: Mapped[datetime | None] = mapped_column(
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

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="monitor_tasks")
    logs: Mapped[list["TaskExecutionLog"]] = relationship(
        "TaskExecutionLog",
        back_populates="task",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<FavoriteMonitorTask(id={self.id}, user_id={self.user_id}, "
            f"product_id={self.product_id}, color={self.color}, size={self.size}, "
            f"active={self.is_active})>"
        )
