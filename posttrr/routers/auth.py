"""Authentication router for member registration."""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.auth.api_key import issue_api_key
from posttrr.config import settings
from posttrr.database import get_db
from posttrr.errors import api_error
from posttrr.middleware.rate_limit import limiter
from posttrr.models.user import User, UserRole
from posttrr.schemas.auth import RegisteredUser, RegisterRequest
from posttrr.schemas.common import ApiResponse
from posttrr.services.system_notifications import send_welcome_notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])

DEFAULT_ROLES = ["member"]


def _conflict():
    return api_error(status.HTTP_409_CONFLICT, "CONFLICT", "Username or email already exists")


@router.post(
    "/register",
    response_model=ApiResponse[RegisteredUser],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.register_rate_limit)
async def register(
    request: Request,
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[RegisteredUser]:
    """
    Create a member account with its first API key.

    The new member is sent the welcome and onboarding notifications. A
    failure there is reported in ``welcomeNotificationSent`` and never
    fails the registration.

    Returns the plaintext API key - this is the only time it will be visible.
    """
    # Check for existing username or email (case-insensitive for email)
    existing = await db.execute(
        select(User.id).where((User.username == data.username) | (User.email.ilike(data.email)))
    )
    if existing.first():
        raise _conflict()

    user = User(
        username=data.username,
        email=data.email.lower(),
        display_name=data.display_name,
        user_type=data.user_type,
    )
    db.add(user)
    await db.flush()

    for role in DEFAULT_ROLES:
        db.add(UserRole(user_id=user.id, role=role))
    plaintext_key, _ = issue_api_key(db, user, "Initial key", DEFAULT_ROLES)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise _conflict()

    registered = RegisteredUser(
        user_id=str(user.id),
        username=user.username,
        email=user.email,
        display_name=user.display_name,
        user_type=user.user_type,
        api_key=plaintext_key,
        roles=DEFAULT_ROLES,
        welcome_notification_sent=False,
    )
    logger.info("Registered %s %s", registered.user_type, registered.username)

    registered.welcome_notification_sent = await send_welcome_notification(
        db,
        user_id=registered.user_id,
        user_name=registered.display_name,
        user_type=registered.user_type,
    )

    return ApiResponse(data=registered, message="Registration successful")
