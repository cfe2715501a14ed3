"""
Category push subscription data model.
"""

from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.src.core.database import Base

if TYPE_CHECKING:
    from backend.src.models.user import User

CHANNEL_WECHAT = "WECHAT"


class PushSubscription(Base):
    """
    New-arrival push settings for one user.

    Attributes:
        user_id: Subscriber
        is_enabled: Master switch
        channel: Delivery channel, only WECHAT is supported
        frequency_seconds: Minimum spacing between pushes to this subscriber
        genders: Subscribed category values
        last_push_time: Last time at least one push succeeded
    """

    __tablename__ = "push_subscriptions"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Foreign keys
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    channel: Mapped[str] = mapped_column(String(16), nullable=False, default=CHANNEL_WECHAT)
    frequency_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=3600)
    genders: Mapped[List[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
    )

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
    user: Mapped["User"] = relationship("User", back_populates="push_subscription")

    def __repr__(self) -> str:
        return (
            f"<PushSubscription(user_id={self.user_id}, enabled={self.is_enabled}, "
            f"genders={self.genders})>"
        )
