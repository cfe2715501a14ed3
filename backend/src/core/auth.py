"""
API key authentication with bcrypt verification and rate limiting.
"""

import time
from collections import defaultdict
from datetime import datetime
from typing import Dict, Optional

import bcrypt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.core.config import settings
from backend.src.core.database import get_db
from backend.src.core.exceptions import (
    AuthorizationError,
    InvalidAPIKeyError,
    RateLimitExceededError,
)
from backend.src.core.logging import get_logger

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

# In-memory rate limiting storage (single process)
_rate_limit_storage: Dict[str, list] = defaultdict(list)


class AuthenticatedUser:
    """Represents an authenticated user."""

    def __init__(
        self,
        user_id: int,
        api_key_id: int,
        permissions: list[str],
        role: str = "USER",
    ):
        self.user_id = user_id
        self.api_key_id = api_key_id
        self.permissions = permissions
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN" or "admin" in self.permissions

    def has_permission(self, required_scope: str) -> bool:
        """
        Check if user has required permission.

        Args:
            required_scope: Required permission scope

        Returns:
            True if user has permission
        """
        return required_scope in self.permissions or self.is_admin


def hash_api_key(api_key: str) -> str:
    """Hash an API key for storage."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(api_key.encode("utf-8"), salt).decode("utf-8")


async def verify_api_key(api_key: str, db: AsyncSession) -> Optional[AuthenticatedUser]:
    """
    Verify API key against database.

    Args:
        api_key: API key to verify
        db: Database session

    Returns:
        Authenticated user if the key is valid and its owner active, None otherwise
    """
    # Import here to avoid circular dependency
    from backend.src.models.api_key import APIKey
    from backend.src.models.user import User

    # Query for API key by prefix
    key_prefix = api_key[:8]

    query = (
        select(APIKey, User)
        .join(User, User.id == APIKey.user_id)
        .where(
            APIKey.key_prefix == key_prefix,
            APIKey.invalidated_at.is_(None),
        )
    )

    result = await db.execute(query)
    row = result.first()

    if not row:
        return None

    api_key_record, user = row

    if not user.is_active:
        return None

    # Verify hash using bcrypt
    if not bcrypt.checkpw(api_key.encode("utf-8"), api_key_record.key_hash.encode("utf-8")):
        return None

    # Update last_used_at timestamp
    await db.execute(
        update(APIKey)
        .where(APIKey.id == api_key_record.id)
        .values(last_used_at=datetime.utcnow())
    )
    await db.commit()

    return AuthenticatedUser(
        user_id=user.id,
        api_key_id=api_key_record.id,
        permissions=list(api_key_record.permissions_scope or []),
        role=user.role,
    )


async def check_rate_limit(
    user_id: int,
    limit: Optional[int] = None,
    window_seconds: int = 3600,
) -> None:
    """
    Check rate limit for user.

    Args:
        user_id: User ID
        limit: Request limit, defaults to RATE_LIMIT_PER_API_KEY_PER_HOUR
        window_seconds: Time window in seconds

    Raises:
        RateLimitExceededError: If rate limit exceeded
    """
    limit = limit or settings.RATE_LIMIT_PER_API_KEY_PER_HOUR
    now = time.time()
    user_key = str(user_id)

    # Clean old entries
    cutoff = now - window_seconds
    _rate_limit_storage[user_key] = [ts for ts in _rate_limit_storage[user_key] if ts > cutoff]

    if len(_rate_limit_storage[user_key]) >= limit:
        retry_after = int(window_seconds - (now - _rate_limit_storage[user_key][0]))
        raise RateLimitExceededError(
            message=f"Rate limit exceeded: {limit} requests per {window_seconds} seconds",
            retry_after=retry_after,
        )

    _rate_limit_storage[user_key].append(now)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    """
    Dependency to get authenticated user from request.

    Args:
        request: FastAPI request
        credentials: HTTP bearer token credentials
        db: Database session

    Returns:
        Authenticated user

    Raises:
        InvalidAPIKeyError: If authentication fails
    """
    if not credentials:
        # Try X-API-Key header as fallback
        api_key = request.headers.get("X-API-Key")
        if not api_key:
            raise InvalidAPIKeyError("Missing API key")
    else:
        api_key = credentials.credentials

    user = await verify_api_key(api_key, db)
    if not user:
        logger.warning(
            "Invalid API key attempt",
            extra={"api_key_prefix": api_key[:8] if len(api_key) >= 8 else "invalid"},
        )
        raise InvalidAPIKeyError("Invalid or expired API key")

    await check_rate_limit(user.user_id)

    logger.info(
        "User authenticated",
        extra={"user_id": user.user_id, "api_key_id": user.api_key_id},
    )

    return user


def require_permission(required_scope: str):
    """
    Dependency factory to require specific permission.

    Args:
        required_scope: Required permission scope

    Returns:
        Dependency function
    """

    async def permission_checker(
        user: AuthenticatedUser = Depends(get_current_user),
    ) -> AuthenticatedUser:
        """Check if user has required permission."""
        if not user.has_permission(required_scope):
            raise AuthorizationError(
                message=f"Requires '{required_scope}' permission",
                required_scope=required_scope,
            )
        return user

    return permission_checker


# Convenience dependencies for common permission checks
require_read = require_permission("read")
require_write = require_permission("write")
require_admin = require_permission("admin")
