"""Core utilities package."""

from backend.src.core.config import settings
from backend.src.core.database import Base, get_db
from backend.src.core.logging import get_logger, set_request_id

__all__ = [
    "settings",
    "Base",
    "get_db",
    "get_logger",
    "set_request_id",
]
