"""
Pydantic schemas for per-favorite monitors and user push settings.
"""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from backend.src.core.categories import parse_category
from backend.src.models.base import BaseModel

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class MonitorStartRequest(BaseModel):
    """Start (or reconfigure) a monitor for one favorited variant."""

    product_id: str = Field(..., min_length=1)
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    color: str = ""
    size: str = ""
    target_price: Optional[float] = Field(None, ge=0)
    frequency_seconds: int = Field(default=60, ge=1)
    window_start: Optional[str] = Field(None, examples=["08:00"])
    window_end: Optional[str] = Field(None, examples=["23:00"])

    @field_validator("window_start", "window_end")
    @classmethod
    def validate_hhmm(cls, v: Optional[str]) -> Optional[str]:
        """Windows are HH:MM strings."""
        if v is None or v == "":
            return None
        if not _HHMM.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v


class MonitorStopRequest(BaseModel):
    """Stop the monitor for one favorited variant."""

    product_id: str = Field(..., min_length=1)
    color: str = ""
    size: str = ""


class MonitorStatus(BaseModel):
    """Live state of one monitor."""

    task_id: Optional[int] = None
    product_id: str
    color: str
    size: str
    frequency_seconds: int
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    is_running: bool
    last_check_result: Optional[bool] = None
    next_allowed_notify_at: Optional[datetime] = None
    logs: List[str] = Field(default_factory=list)


class MonitorListResponse(BaseModel):
    monitors: List[MonitorStatus] = Field(default_factory=list)


class TaskLogEntry(BaseModel):
    """Persisted polling outcome."""

    id: int
    status: str
    message: Optional[str] = None
    timestamp: datetime


class TaskLogListResponse(BaseModel):
    task_id: int
    logs: List[TaskLogEntry] = Field(default_factory=list)


class MonitorTaskResponse(BaseModel):
    """Persisted favorite monitor task."""

    id: int
    user_id: int
    product_id: str
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    color: str
    size: str
    target_price: Optional[float] = None
    frequency_seconds: int
    is_active: bool
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    last_push_time: Optional[datetime] = None
    created_at: datetime


class MonitorTaskListResponse(BaseModel):
    tasks: List[MonitorTaskResponse] = Field(default_factory=list)


class PushSettings(BaseModel):
    """New-arrival push settings of one user."""

    user_id: int
    is_enabled: bool = False
    channel: str = "WECHAT"
    frequency_seconds: int = 3600
    genders: List[str] = Field(default_factory=list)
    last_push_time: Optional[datetime] = None


class PushSettingsUpdateRequest(BaseModel):
    is_enabled: bool = False
    frequency_seconds: int = Field(default=3600, ge=60)
    genders: List[str] = Field(default_factory=list)

    @field_validator("genders")
    @classmethod
    def validate_genders(cls, v: List[str]) -> List[str]:
        """Normalize every entry to a category value, dropping duplicates."""
        normalized: List[str] = []
        for value in v:
            category = parse_category(value).value
            if category not in normalized:
                normalized.append(category)
        return normalized


class UserUpdateRequest(BaseModel):
    """Admin update of a user's push recipient and favorite push frequency."""

    wx_user_id: Optional[str] = Field(None, max_length=128)
    notify_frequency_minutes: Optional[int] = Field(None, ge=1)


class UserResponse(BaseModel):
    id: int
    username: str
    role: str
    is_active: bool
    wx_user_id: Optional[str] = None
    notify_frequency_minutes: int


# Export
__all__ = [
    "MonitorStartRequest",
    "MonitorStopRequest",
    "MonitorStatus",
    "MonitorListResponse",
    "TaskLogEntry",
    "TaskLogListResponse",
    "MonitorTaskResponse",
    "MonitorTaskListResponse",
    "PushSettings",
    "PushSettingsUpdateRequest",
    "UserUpdateRequest",
    "UserResponse",
]
