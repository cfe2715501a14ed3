"""
Pydantic schemas for crawler schedule management.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from backend.src.models.base import BaseModel


class ScheduleUpsertRequest(BaseModel):
    """Create, update, enable or disable the schedule of one category."""

    category: Optional[str] = Field(None, description="Category value or label")
    is_enabled: bool = Field(default=True, description="Whether the timer should run")
    cron_expression: Optional[str] = Field(
        None,
        description="5-field recurrence expression",
        examples=["*/30 * * * *"],
    )
    interval_minutes: Optional[int] = Field(
        None,
        description="Convenience interval converted to a recurrence expression",
    )


class ScheduleResponse(BaseModel):
    """Persisted schedule together with the live timer state."""

    id: int
    category: str
    is_enabled: bool
    cron_expression: str
    interval_minutes: Optional[int] = None
    description: str = ""
    last_run_time: Optional[datetime] = None
    next_run_time: Optional[datetime] = None
    is_scheduled: bool = False
    upcoming_runs: List[datetime] = Field(default_factory=list)


class ScheduleListResponse(BaseModel):
    """All persisted schedules."""

    schedules: List[ScheduleResponse] = Field(default_factory=list)


# Export
__all__ = ["ScheduleUpsertRequest", "ScheduleResponse", "ScheduleListResponse"]
