"""Watermark settings, logo storage and image compositing."""

import asyncio
import logging
import re
import time
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlparse

import httpx
from fastapi import UploadFile
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.config import settings
from posttrr.database import utcnow
from posttrr.models.setting import Setting

logger = logging.getLogger(__name__)

SETTINGS_TYPE = "watermark"
DEFAULT_TEXT = "ashishproperties.in"
DEFAULT_POSITION = "bottom-right"
DEFAULT_OPACITY = 0.8
POSITIONS = ("top-left", "top-right", "bottom-left", "bottom-right", "center")

DEFAULT_SETTINGS: dict[str, Any] = {
    "enabled": True,
    "position": DEFAULT_POSITION,
    "opacity": DEFAULT_OPACITY,
    "text": DEFAULT_TEXT,
    "logo_url": None,
}

ALLOWED_IMAGE_TYPES = re.compile(r"jpeg|jpg|png|gif|svg")
LOGO_URL_PREFIX = "/uploads/watermark/"
READ_CHUNK_SIZE = 64 * 1024


class WatermarkError(Exception):
    """Base error for watermark operations."""


class InvalidLogoError(WatermarkError):
    """Uploaded logo is not an allowed image type."""


class LogoTooLargeError(WatermarkError):
    """Uploaded logo exceeds the size ceiling."""


class ImageFetchError(WatermarkError):
    """The source image could not be fetched or decoded."""


# --- Settings ---


async def get_watermark_settings(db: AsyncSession) -> dict[str, Any]:
    """Defaults merged with the persisted override, if any."""
    row = await db.get(Setting, SETTINGS_TYPE)
    if row is None:
        return dict(DEFAULT_SETTINGS)
    return {**DEFAULT_SETTINGS, **(row.value or {}), "updated_at": row.updated_at}


def _coerce_opacity(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_OPACITY
    return min(max(float(value), 0.0), 1.0)


def normalize_settings(
    enabled: Any,
    position: str | None,
    opacity: Any,
    text: str | None,
    logo_url: str | None,
) -> dict[str, Any]:
    """Coerce an update payload into a complete settings document."""
    return {
        "enabled": bool(enabled),
        "position": position or DEFAULT_POSITION,
        "opacity": _coerce_opacity(opacity),
        "text": text or DEFAULT_TEXT,
        "logo_url": logo_url or None,
    }


async def update_watermark_settings(db: AsyncSession, values: dict[str, Any]) -> dict[str, Any]:
    """Upsert the singleton settings document."""
    now = utcnow()
    row = await db.get(Setting, SETTINGS_TYPE)
    if row is None:
        row = Setting(type=SETTINGS_TYPE, value=values, updated_at=now)
        db.add(row)
    else:
        row.value = values
        row.updated_at = now
    await db.commit()
    logger.info("Watermark settings updated: %s", values)
    return {**values, "updated_at": now}


# --- Logo upload ---


def validate_logo(filename: str, content_type: str | None) -> str:
    """Return the lowercased extension if both it and the MIME type are allowed."""
    extension = Path(filename or "").suffix.lower()
    if not (
        extension
        and ALLOWED_IMAGE_TYPES.search(extension)
        and ALLOWED_IMAGE_TYPES.search(content_type or "")
    ):
        raise InvalidLogoError("Only image files are allowed")
    return extension


async def save_logo(upload: UploadFile, directory: Path | None = None) -> str:
    """
    Persist an uploaded logo and return its stored filename.

    Raises:
        InvalidLogoError: extension or MIME type not allowed
        LogoTooLargeError: body larger than the configured ceiling
    """
    extension = validate_logo(upload.filename or "", upload.content_type)
    limit = settings.watermark_logo_max_bytes

    data = bytearray()
    while chunk := await upload.read(READ_CHUNK_SIZE):
        data.extend(chunk)
        if len(data) > limit:
            raise LogoTooLargeError(f"Logo exceeds the {limit // (1024 * 1024)}MB limit")

    directory = directory or settings.watermark_upload_dir
    filename = f"watermark-logo-{int(time.time() * 1000)}{extension}"

    def _write() -> None:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / filename).write_bytes(bytes(data))

    await asyncio.to_thread(_write)
    logger.info("Stored watermark logo %s (%d bytes)", filename, len(data))
    return filename


def local_logo_path(logo_url: str | None, directory: Path | None = None) -> Path | None:
    """Map an uploaded-logo URL back to its file, if it is one of ours."""
    if not logo_url or not logo_url.startswith(LOGO_URL_PREFIX):
        return None
    name = PurePosixPath(logo_url).name
    path = (directory or settings.watermark_upload_dir) / name
    return path if path.is_file() else None


# --- Apply ---


def is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


async def fetch_image(client: httpx.AsyncClient, url: str) -> tuple[bytes, str | None]:
    """Download an image, returning its bytes and content type."""
    try:
        response = await client.get(url, timeout=settings.watermark_fetch_timeout)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise ImageFetchError(f"Could not fetch {url}: {exc}") from exc
    return response.content, response.headers.get("content-type")


def _anchor(position: str, canvas: tuple[int, int], box: tuple[int, int], margin: int) -> tuple[int, int]:
    width, height = canvas
    box_w, box_h = box
    if position == "center":
        return (width - box_w) // 2, (height - box_h) // 2
    x = margin if position.endswith("left") else width - box_w - margin
    y = margin if position.startswith("top") else height - box_h - margin
    return max(x, 0), max(y, 0)


def _open_image(image_bytes: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageFetchError(f"Not a decodable image: {exc}") from exc
    return image


def to_jpeg(image_bytes: bytes, content_type: str | None) -> bytes:
    """Re-encode an image as JPEG; JPEG input is returned untouched."""
    if content_type and content_type.split(";")[0].strip().lower() == "image/jpeg":
        return image_bytes
    output = BytesIO()
    _open_image(image_bytes).convert("RGB").save(output, format="JPEG", quality=90)
    return output.getvalue()


def composite_watermark(
    image_bytes: bytes,
    text: str,
    opacity: float,
    position: str = DEFAULT_POSITION,
    logo_path: Path | None = None,
) -> bytes:
    """
    Draw the watermark onto an image and return it as JPEG.

    The logo, when given, sits above the text; the pair is anchored at
    ``position`` with a margin proportional to the image width.
    """
    base = _open_image(image_bytes).convert("RGBA")
    alpha = max(0, min(255, int(255 * opacity)))
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    font_size = max(12, base.width // 30)
    font = ImageFont.load_default(size=font_size)
    stroke = max(1, font_size // 15)
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font, stroke_width=stroke)
    text_w, text_h = right - left, bottom - top

    logo = None
    if logo_path is not None and logo_path.suffix.lower() != ".svg":
        logo = Image.open(logo_path).convert("RGBA")
        target_w = max(1, base.width // 6)
        ratio = target_w / logo.width
        logo = logo.resize((target_w, max(1, int(logo.height * ratio))))
        logo.putalpha(logo.getchannel("A").point(lambda a: a * alpha // 255))

    gap = font_size // 3 if logo is not None else 0
    box_w = max(text_w, logo.width if logo is not None else 0)
    box_h = text_h + (logo.height + gap if logo is not None else 0)
    margin = max(10, base.width // 50)
    x, y = _anchor(position, base.size, (box_w, box_h), margin)

    if logo is not None:
        overlay.paste(logo, (x + (box_w - logo.width) // 2, y), logo)
        y += logo.height + gap

    draw.text(
        (x + (box_w - text_w) // 2 - left, y - top),
        text,
        font=font,
        fill=(255, 255, 255, alpha),
        stroke_width=stroke,
        stroke_fill=(0, 0, 0, alpha),
    )

    output = BytesIO()
    Image.alpha_composite(base, overlay).convert("RGB").save(output, format="JPEG", quality=90)
    return output.getvalue()


async def apply_watermark(
    db: AsyncSession,
    client: httpx.AsyncClient,
    image_url: str,
) -> tuple[bytes, str]:
    """
    Fetch ``image_url`` and watermark it with the current settings.

    Returns ``(body, media_type)``; the body is always JPEG. With
    watermarking disabled the image is only re-encoded.
    """
    image_bytes, content_type = await fetch_image(client, image_url)
    current = await get_watermark_settings(db)

    if not current["enabled"]:
        body = await asyncio.to_thread(to_jpeg, image_bytes, content_type)
        return body, "image/jpeg"

    body = await asyncio.to_thread(
        composite_watermark,
        image_bytes,
        current["text"] or DEFAULT_TEXT,
        current["opacity"] or DEFAULT_OPACITY,
        current["position"],
        local_logo_path(current["logo_url"]),
    )
    return body, "image/jpeg"
