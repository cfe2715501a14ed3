"""
Base Pydantic models and response schemas.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel as PydanticBaseModel, ConfigDict, Field


class BaseModel(PydanticBaseModel):
    """Base Pydantic model with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=False,
        arbitrary_types_allowed=True,
    )


class SuccessResponse(BaseModel):
    """Standard success response."""

    message: str = Field(..., description="Success message")
    data: Optional[Any] = Field(None, description="Response data")


class HealthStatus(BaseModel):
    """Health check status."""

    status: str = Field(..., description="Health status (healthy, degraded, unhealthy)")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Check timestamp")


class DetailedHealthStatus(HealthStatus):
    """Detailed health check status with component statuses."""

    components: dict[str, Any] = Field(
        default_factory=dict, description="Component-specific health status"
    )
    version: Optional[str] = Field(None, description="Application version")
    environment: Optional[str] = Field(None, description="Environment name")
