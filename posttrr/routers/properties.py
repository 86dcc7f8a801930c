"""Property listing and moderation routers."""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.auth.dependencies import get_current_user, require_admin
from posttrr.database import get_db, utcnow
from posttrr.errors import api_error, not_found, parse_id
from posttrr.models.property import Property
from posttrr.models.user import APIKey, User
from posttrr.schemas.common import ApiResponse, iso
from posttrr.schemas.properties import CreatePropertyRequest, PropertyItem, RejectPropertyRequest
from posttrr.services.activity import log_activity
from posttrr.services.system_notifications import (
    send_post_created_notification,
    send_post_rejected_notification,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/properties", tags=["Properties"])
admin_router = APIRouter(prefix="/api/v1/admin/properties", tags=["Properties"])


def property_item(prop: Property) -> PropertyItem:
    return PropertyItem(
        id=str(prop.id),
        owner_id=str(prop.owner_id),
        title=prop.title,
        description=prop.description,
        status=prop.status,
        rejection_reason=prop.rejection_reason,
        created_at=iso(prop.created_at),
        moderated_at=iso(prop.moderated_at),
    )


@router.post(
    "",
    response_model=ApiResponse[PropertyItem],
    status_code=status.HTTP_201_CREATED,
)
async def create_property(
    data: CreatePropertyRequest,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
) -> ApiResponse[PropertyItem]:
    """Submit a listing for review. The owner is told it was received."""
    user, _ = auth
    owner_id = user.id

    prop = Property(owner_id=owner_id, title=data.title, description=data.description)
    db.add(prop)
    await db.commit()
    item = property_item(prop)

    await send_post_created_notification(
        db,
        property_id=item.id,
        user_id=owner_id,
        property_title=item.title,
    )
    return ApiResponse(data=item, message="Property submitted for review")


@router.get(
    "/mine",
    response_model=ApiResponse[list[PropertyItem]],
    status_code=status.HTTP_200_OK,
)
async def list_my_properties(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
) -> ApiResponse[list[PropertyItem]]:
    user, _ = auth
    result = await db.execute(
        select(Property).where(Property.owner_id == user.id).order_by(Property.created_at.desc())
    )
    return ApiResponse(data=[property_item(p) for p in result.scalars().all()])


async def _pending_property(db: AsyncSession, property_id: str) -> Property:
    prop = await db.get(Property, parse_id(property_id, "property"))
    if not prop:
        raise not_found("Property not found")
    if prop.status != "pending":
        raise api_error(
            status.HTTP_409_CONFLICT,
            "CONFLICT",
            f"Property has already been {prop.status}",
        )
    return prop


@admin_router.post(
    "/{property_id}/approve",
    response_model=ApiResponse[PropertyItem],
    status_code=status.HTTP_200_OK,
)
async def approve_property(
    request: Request,
    property_id: str,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
) -> ApiResponse[PropertyItem]:
    user, api_key = auth
    prop = await _pending_property(db, property_id)

    prop.status = "approved"
    prop.moderated_at = utcnow()
    await log_activity(
        db=db,
        request=request,
        user_id=user.id,
        api_key_id=api_key.id,
        action="update",
        resource="property",
        resource_id=prop.id,
        metadata={"status": "approved"},
    )
    await db.commit()

    return ApiResponse(data=property_item(prop), message="Property approved")


@admin_router.post(
    "/{property_id}/reject",
    response_model=ApiResponse[PropertyItem],
    status_code=status.HTTP_200_OK,
)
async def reject_property(
    request: Request,
    property_id: str,
    data: RejectPropertyRequest,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
) -> ApiResponse[PropertyItem]:
    """Reject a pending listing and tell its owner why."""
    user, api_key = auth
    prop = await _pending_property(db, property_id)

    prop.status = "rejected"
    prop.rejection_reason = data.reason
    prop.moderated_at = utcnow()
    await log_activity(
        db=db,
        request=request,
        user_id=user.id,
        api_key_id=api_key.id,
        action="update",
        resource="property",
        resource_id=prop.id,
        metadata={"status": "rejected"},
    )
    await db.commit()
    item = property_item(prop)

    await send_post_rejected_notification(
        db,
        property_id=item.id,
        user_id=item.owner_id,
        property_title=item.title,
        rejection_reason=data.reason,
    )
    return ApiResponse(data=item, message="Property rejected")
