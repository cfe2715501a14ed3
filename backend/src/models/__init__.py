"""Data models package."""

from backend.src.models.api_key import APIKey
from backend.src.models.base import (
    BaseModel,
    DetailedHealthStatus,
    HealthStatus,
    SuccessResponse,
)
from backend.src.models.catalog_item import CatalogItem
from backend.src.models.crawl_log import CrawlExecutionLog
from backend.src.models.monitor_task import FavoriteMonitorTask
from backend.src.models.notification_log import NotificationLog
from backend.src.models.push_subscription import PushSubscription
from backend.src.models.schedule import CrawlerSchedule
from backend.src.models.task_log import TaskExecutionLog, TaskLogStatus
from backend.src.models.user import User

__all__ = [
    "BaseModel",
    "SuccessResponse",
    "HealthStatus",
    "DetailedHealthStatus",
    "APIKey",
    "CatalogItem",
    "CrawlExecutionLog",
    "CrawlerSchedule",
    "FavoriteMonitorTask",
    "NotificationLog",
    "PushSubscription",
    "TaskExecutionLog",
    "TaskLogStatus",
    "User",
]
