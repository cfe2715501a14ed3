"""
Notification log entity model.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.src.core.database import Base


class NotificationLog(Base):
    """One successful back-in-stock push for a favorited variant."""

    __tablename__ = "notification_logs"
    __table_args__ = (
        Index(
            "idx_notification_logs_variant",
            "user_id",
            "product_id",
            "color",
            "size",
            "timestamp",
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Foreign keys
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    color: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    size: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationLog(user_id={self.user_id}, product_id={self.product_id}, "
            f"timestamp={self.timestamp})>"
        )
