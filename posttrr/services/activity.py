"""Activity logging service for the admin audit trail."""

from typing import Any, Literal
from uuid import UUID

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.database import utcnow
from posttrr.models.activity import ActivityLog

# Type aliases
ActionType = Literal["create", "update", "delete"]
ResourceType = Literal["notification", "property", "watermark_settings", "watermark_logo", "user"]


async def log_activity(
    db: AsyncSession,
    request: Request,
    user_id: UUID | None,
    api_key_id: UUID | None,
    action: ActionType,
    resource: ResourceType,
    resource_id: UUID | str,
    metadata: dict[str, Any] | None = None,
) -> ActivityLog:
    """
    Add an audit entry to the session.

    The caller owns the transaction; nothing is committed here.

    Usage in endpoints:
        await log_activity(
            db=db,
            request=request,
            user_id=user.id,
            api_key_id=api_key.id,
            action="delete",
            resource="notification",
            resource_id=notification_id,
        )
    """
    request_id = getattr(request.state, "request_id", None)
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent", "")[:512]  # Truncate to 512 chars

    log_entry = ActivityLog(
        timestamp=utcnow(),
        user_id=user_id,
        api_key_id=api_key_id,
        action=action,
        resource=resource,
        resource_id=str(resource_id),
        request_id=request_id,
        ip_address=ip_address,
        user_agent=user_agent,
        extra_data=metadata or {},
    )
    db.add(log_entry)
    return log_entry
