"""
FastAPI dependencies for services owned by the application lifespan.
"""

from fastapi import Request

from backend.src.core.exceptions import ConfigurationError
from backend.src.services.catalog_fetcher import CatalogFetcher
from backend.src.services.crawl_service import CrawlService
from backend.src.services.favorite_monitor import MonitorRegistry
from backend.src.services.schedule_manager import CrawlScheduleManager
from backend.src.services.schedule_service import ScheduleService


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise ConfigurationError(message=f"{name} is not initialized", config_key=name)
    return value


def get_catalog_fetcher(request: Request) -> CatalogFetcher:
    return _state(request, "catalog_fetcher")


def get_crawl_service(request: Request) -> CrawlService:
    return _state(request, "crawl_service")


def get_schedule_manager(request: Request) -> CrawlScheduleManager:
    return _state(request, "schedule_manager")


def get_schedule_service(request: Request) -> ScheduleService:
    return ScheduleService(get_schedule_manager(request))


def get_monitor_registry(request: Request) -> MonitorRegistry:
    return _state(request, "monitor_registry")


# Export
__all__ = [
    "get_catalog_fetcher",
    "get_crawl_service",
    "get_schedule_manager",
    "get_schedule_service",
    "get_monitor_registry",
]
