"""Authentication dependencies for FastAPI endpoints."""

import hmac

from fastapi import Depends, Header, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from posttrr.auth.api_key import API_KEY_PREFIX, hash_api_key
from posttrr.database import as_utc, get_db, utcnow
from posttrr.errors import api_error
from posttrr.models.user import APIKey, User

# Minimum interval between last_used_at updates to reduce write amplification
LAST_USED_UPDATE_INTERVAL_SECONDS = 300  # 5 minutes


async def get_current_user(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    db: AsyncSession = Depends(get_db),
) -> tuple[User, APIKey]:
    """
    Validate API key and return the authenticated user and API key.

    Raises:
        HTTPException: 401 if API key is missing, invalid, expired or revoked
    """
    if not x_api_key:
        raise api_error(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "API key required")

    if not x_api_key.startswith(API_KEY_PREFIX):
        raise api_error(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Invalid API key format")

    key_hash = hash_api_key(x_api_key)

    result = await db.execute(
        select(APIKey)
        .options(selectinload(APIKey.user).selectinload(User.roles))
        .where(APIKey.key_hash == key_hash)
        .where(APIKey.revoked_at.is_(None))
    )
    api_key = result.scalar_one_or_none()

    if not api_key:
        # Keep response time independent of whether the key exists
        hmac.compare_digest(key_hash, "0" * 64)
        raise api_error(
            status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Invalid or revoked API key"
        )

    now = utcnow()
    if api_key.expires_at is not None and as_utc(api_key.expires_at) < now:
        raise api_error(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "API key has expired")

    # Sampled last_used_at update, at most once per interval
    last_used = as_utc(api_key.last_used_at)
    if last_used is None or (now - last_used).total_seconds() > LAST_USED_UPDATE_INTERVAL_SECONDS:
        api_key.last_used_at = now
        api_key.user.last_seen_at = now

    return api_key.user, api_key


async def require_admin(
    auth: tuple[User, APIKey] = Depends(get_current_user),
) -> tuple[User, APIKey]:
    """
    Require the authenticated user to have admin role.

    Raises:
        HTTPException: 403 if user doesn't have admin role
    """
    user, api_key = auth
    user_roles = {role.role for role in user.roles}

    if "admin" not in user_roles:
        raise api_error(status.HTTP_403_FORBIDDEN, "FORBIDDEN", "Admin access required")

    return user, api_key
