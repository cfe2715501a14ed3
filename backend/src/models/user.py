"""
User account data model.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.src.core.database import Base

if TYPE_CHECKING:
    from backend.src.models.api_key import APIKey
    from backend.src.models.monitor_task import FavoriteMonitorTask
    from backend.src.models.push_subscription import PushSubscription

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"


class User(Base):
    """Account that owns favorites, API keys and a push subscription."""

    __tablename__ = "users"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Basic info
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_USER)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    # Push settings
    wx_user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notify_frequency_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)

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
    api_keys: Mapped[list["APIKey"]] = relationship(
        "APIKey",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    monitor_tasks: Mapped[list["FavoriteMonitorTask"]] = relationship(
        "FavoriteMonitorTask",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    push_subscription: Mapped["PushSubscription | None"] = relationship(
        "PushSubscription",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"
