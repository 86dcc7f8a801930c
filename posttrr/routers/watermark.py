"""Admin router for watermark settings, logo upload and image watermarking."""

import logging
from collections.abc import AsyncGenerator

import httpx
from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.auth.dependencies import require_admin
from posttrr.config import settings
from posttrr.database import get_db
from posttrr.errors import api_error, validation_error
from posttrr.middleware.rate_limit import limiter
from posttrr.models.user import APIKey, User
from posttrr.schemas.common import ApiResponse, iso
from posttrr.schemas.watermark import LogoUpload, WatermarkSettings, WatermarkSettingsUpdate
from posttrr.services import watermark as watermark_service
from posttrr.services.activity import log_activity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin/watermark", tags=["Watermark"])

DOWNLOAD_FILENAME = "ashishproperties-image.jpg"


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client used to fetch source images."""
    async with httpx.AsyncClient(follow_redirects=True) as client:
        yield client


def _settings_response(values: dict) -> WatermarkSettings:
    return WatermarkSettings(
        enabled=values["enabled"],
        position=values["position"],
        opacity=values["opacity"],
        text=values["text"],
        logo_url=values["logo_url"],
        updated_at=iso(values.get("updated_at")),
    )


@router.get(
    "/settings",
    response_model=ApiResponse[WatermarkSettings],
    status_code=status.HTTP_200_OK,
)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
) -> ApiResponse[WatermarkSettings]:
    """Current watermark settings, or the defaults if none were saved."""
    values = await watermark_service.get_watermark_settings(db)
    return ApiResponse(data=_settings_response(values))


@router.put(
    "/settings",
    response_model=ApiResponse[WatermarkSettings],
    status_code=status.HTTP_200_OK,
)
async def update_settings(
    request: Request,
    data: WatermarkSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
) -> ApiResponse[WatermarkSettings]:
    """
    Replace the watermark settings.

    Missing or malformed fields fall back to their defaults; ``enabled``
    is taken by truthiness.
    """
    user, api_key = auth
    user_id, api_key_id = user.id, api_key.id

    values = watermark_service.normalize_settings(
        enabled=data.enabled,
        position=data.position,
        opacity=data.opacity,
        text=data.text,
        logo_url=data.logo_url,
    )
    await log_activity(
        db=db,
        request=request,
        user_id=user_id,
        api_key_id=api_key_id,
        action="update",
        resource="watermark_settings",
        resource_id=watermark_service.SETTINGS_TYPE,
        metadata={"enabled": values["enabled"], "position": values["position"]},
    )
    saved = await watermark_service.update_watermark_settings(db, values)

    return ApiResponse(
        data=_settings_response(saved),
        message="Watermark settings updated successfully",
    )


@router.post(
    "/logo",
    response_model=ApiResponse[LogoUpload],
    status_code=status.HTTP_200_OK,
)
@limiter.limit(settings.logo_upload_rate_limit)
async def upload_logo(
    request: Request,
    logo: UploadFile | None = File(default=None),
    auth: tuple[User, APIKey] = Depends(require_admin),
) -> ApiResponse[LogoUpload]:
    """Store a watermark logo and return the public URL to reference it by."""
    if logo is None or not logo.filename:
        raise validation_error("No logo file uploaded")

    try:
        filename = await watermark_service.save_logo(logo)
    except watermark_service.InvalidLogoError as exc:
        raise validation_error(str(exc))
    except watermark_service.LogoTooLargeError as exc:
        raise api_error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "PAYLOAD_TOO_LARGE", str(exc))
    finally:
        await logo.close()

    return ApiResponse(
        data=LogoUpload(
            url=f"{watermark_service.LOGO_URL_PREFIX}{filename}",
            filename=filename,
        ),
        message="Logo uploaded successfully",
    )


@router.get("/apply", status_code=status.HTTP_200_OK)
async def apply(
    image_url: str | None = Query(default=None, alias="imageUrl"),
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    """Fetch ``imageUrl``, watermark it and return it as a JPEG download."""
    if not image_url:
        raise validation_error("Image URL is required")
    if not watermark_service.is_http_url(image_url):
        raise validation_error("Image URL must be an http or https URL")

    try:
        body, media_type = await watermark_service.apply_watermark(db, client, image_url)
    except watermark_service.ImageFetchError:
        logger.exception("Failed to apply watermark to %s", image_url)
        raise api_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "WATERMARK_FAILED",
            "Failed to apply watermark",
        )

    return Response(
        content=body,
        media_type=media_type,
        headers={
            "Cache-Control": "no-cache, no-store",
            "Content-Disposition": f"attachment; filename={DOWNLOAD_FILENAME}",
        },
    )
