"""Admin router for broadcast notifications."""

import logging
import math

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.auth.dependencies import require_admin
from posttrr.database import get_db
from posttrr.errors import not_found, parse_id, validation_error
from posttrr.models.notification import Notification, empty_delivery_meta
from posttrr.models.user import USER_TYPES, APIKey, User
from posttrr.models.user_notification import UserNotification
from posttrr.schemas.common import ApiResponse, MessageResponse, iso
from posttrr.schemas.notifications import (
    DeliveryDetail,
    DeliveryMeta,
    NotificationDetail,
    NotificationItem,
    NotificationList,
    Pagination,
    SendNotificationRequest,
    SendNotificationResult,
    TargetUser,
)
from posttrr.services.activity import log_activity
from posttrr.services.audience import InvalidRecipientIdError, NoRecipientsError
from posttrr.services.channels import ChannelSender, get_channel_senders
from posttrr.services.dispatch import NotificationDispatcher
from posttrr.services.idempotency import IdempotencyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin/notifications", tags=["Notifications"])

TARGET_USER_LIMIT = 100


def notification_item(n: Notification) -> NotificationItem:
    return NotificationItem(
        id=str(n.id),
        title=n.title,
        message=n.message,
        type=n.channel,
        audience=n.audience,
        specific_users=n.specific_users,
        sent_at=iso(n.sent_at),
        scheduled_time=iso(n.scheduled_time),
        recipient_count=n.recipient_count,
        delivered_count=n.delivered_count,
        status=n.status,
        created_by=n.created_by,
        metadata=DeliveryMeta(**{**empty_delivery_meta(), **(n.delivery_meta or {})}),
    )


def delivery_detail(record: UserNotification) -> DeliveryDetail:
    return DeliveryDetail(
        id=str(record.id),
        user_id=str(record.user_id),
        title=record.title,
        message=record.message,
        type=record.type,
        status=record.status,
        error=record.error,
        recipient_info=record.recipient_info,
        delivered_at=iso(record.delivered_at),
        read_at=iso(record.read_at),
        created_at=iso(record.created_at),
    )


# --- List Notifications ---


@router.get(
    "",
    response_model=ApiResponse[NotificationList],
    status_code=status.HTTP_200_OK,
)
async def list_notifications(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status_filter: str | None = Query(default=None, alias="status"),
    type_filter: str | None = Query(default=None, alias="type"),
) -> ApiResponse[NotificationList]:
    """
    List notifications, newest first, with page-based pagination.

    ``status`` and ``type`` filter the list; ``all`` disables a filter.
    """
    conditions = []
    if status_filter and status_filter != "all":
        conditions.append(Notification.status == status_filter)
    if type_filter and type_filter != "all":
        conditions.append(Notification.channel == type_filter)

    result = await db.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.sent_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    notifications = result.scalars().all()

    total_result = await db.execute(
        select(func.count(Notification.id)).where(*conditions)
    )
    total = total_result.scalar() or 0

    return ApiResponse(
        data=NotificationList(
            notifications=[notification_item(n) for n in notifications],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                pages=math.ceil(total / limit),
            ),
        )
    )


# --- Send Notification ---


async def _send(
    request: Request,
    data: SendNotificationRequest,
    db: AsyncSession,
    senders: dict[str, ChannelSender],
    admin_id,
    api_key_id,
) -> ApiResponse[SendNotificationResult]:
    logger.info(
        "Sending notification: title=%r type=%s audience=%s specific_users=%s",
        data.title,
        data.type,
        data.audience,
        len(data.specific_users) if data.specific_users else None,
    )

    dispatcher = NotificationDispatcher(db, senders)
    try:
        notification, recipients = await dispatcher.create(
            title=data.title,
            message=data.message,
            channel=data.type,
            audience=data.audience,
            created_by=str(admin_id),
            specific_users=data.specific_users,
            scheduled_time=data.scheduled_time,
        )
    except (InvalidRecipientIdError, NoRecipientsError) as exc:
        raise validation_error(str(exc))

    await log_activity(
        db=db,
        request=request,
        user_id=admin_id,
        api_key_id=api_key_id,
        action="create",
        resource="notification",
        resource_id=notification.id,
        metadata={"audience": data.audience, "recipient_count": len(recipients)},
    )
    await db.commit()

    if data.scheduled_time:
        return ApiResponse(
            data=SendNotificationResult(
                notification_id=str(notification.id),
                recipient_count=len(recipients),
                status="scheduled",
            ),
            message=f"Notification scheduled for {len(recipients)} recipients",
        )

    await dispatcher.deliver(notification, recipients)
    return ApiResponse(
        data=SendNotificationResult(
            notification_id=str(notification.id),
            recipient_count=len(recipients),
            status=notification.status,
        ),
        message=f"Notification sent to {len(recipients)} recipients",
    )


@router.post(
    "",
    response_model=ApiResponse[SendNotificationResult],
    status_code=status.HTTP_200_OK,
)
async def send_notification(
    request: Request,
    data: SendNotificationRequest,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
    senders: dict[str, ChannelSender] = Depends(get_channel_senders),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    """
    Send a notification to an audience, now or at ``scheduledTime``.

    With an ``Idempotency-Key`` header a retried request replays the first
    response instead of broadcasting again.
    """
    user, api_key = auth
    # Rollbacks expire loaded objects, so keep plain ids
    admin_id, api_key_id = user.id, api_key.id

    if not data.title or not data.message:
        raise validation_error("Title and message are required")

    if not idempotency_key:
        return await _send(request, data, db, senders, admin_id, api_key_id)

    service = IdempotencyService(db)
    request_hash = service.hash_request_body(await request.body())
    acquired, cached = await service.acquire_lock(
        idempotency_key, admin_id, request.method, request.url.path, request_hash
    )
    if not acquired:
        return JSONResponse(status_code=cached["status"], content=cached["body"])

    try:
        response = await _send(request, data, db, senders, admin_id, api_key_id)
    except Exception:
        await db.rollback()
        await service.fail(idempotency_key, admin_id)
        raise

    await service.complete(
        idempotency_key,
        admin_id,
        response.model_dump(mode="json", by_alias=True),
        status.HTTP_200_OK,
    )
    return response


# --- Target Users ---


@router.get(
    "/users",
    response_model=ApiResponse[list[TargetUser]],
    status_code=status.HTTP_200_OK,
)
async def list_target_users(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
    user_type: str | None = Query(default=None, alias="userType"),
    search: str | None = Query(default=None),
) -> ApiResponse[list[TargetUser]]:
    """List users that can be picked for a ``specific`` audience."""
    query = select(User)
    if user_type and user_type != "all":
        query = query.where(User.user_type == user_type)
    else:
        query = query.where(User.user_type.in_(USER_TYPES))

    if search:
        query = query.where(
            or_(
                User.display_name.icontains(search, autoescape=True),
                User.email.icontains(search, autoescape=True),
            )
        )

    result = await db.execute(query.order_by(User.display_name).limit(TARGET_USER_LIMIT))
    users = result.scalars().all()

    return ApiResponse(
        data=[
            TargetUser(
                id=str(u.id),
                name=u.display_name,
                email=u.email,
                user_type=u.user_type,
                created_at=iso(u.created_at),
            )
            for u in users
        ]
    )


# --- Notification Detail ---


@router.get(
    "/{notification_id}",
    response_model=ApiResponse[NotificationDetail],
    status_code=status.HTTP_200_OK,
)
async def get_notification(
    notification_id: str,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
) -> ApiResponse[NotificationDetail]:
    """Get a notification together with its per-recipient delivery records."""
    nid = parse_id(notification_id, "notification")

    notification = await db.get(Notification, nid)
    if not notification:
        raise not_found("Notification not found")

    result = await db.execute(
        select(UserNotification)
        .where(UserNotification.notification_id == nid)
        .order_by(UserNotification.created_at)
    )
    deliveries = result.scalars().all()

    return ApiResponse(
        data=NotificationDetail(
            notification=notification_item(notification),
            delivery_details=[delivery_detail(d) for d in deliveries],
        )
    )


# --- Delete Notification ---


@router.delete(
    "/{notification_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
)
async def delete_notification(
    request: Request,
    notification_id: str,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
) -> MessageResponse:
    """Delete a notification and every per-user record that references it."""
    user, api_key = auth
    nid = parse_id(notification_id, "notification")

    await db.execute(delete(UserNotification).where(UserNotification.notification_id == nid))
    result = await db.execute(delete(Notification).where(Notification.id == nid))

    if result.rowcount:
        await log_activity(
            db=db,
            request=request,
            user_id=user.id,
            api_key_id=api_key.id,
            action="delete",
            resource="notification",
            resource_id=nid,
        )
    await db.commit()

    return MessageResponse(message="Notification deleted successfully")
