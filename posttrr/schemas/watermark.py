"""Watermark settings schemas."""

from typing import Any, Literal

from posttrr.schemas.common import CamelModel

Position = Literal["top-left", "top-right", "bottom-left", "bottom-right", "center"]


class WatermarkSettingsUpdate(CamelModel):
    """Settings update. Loose types are coerced by the service."""

    enabled: Any = False
    position: Position | None = None
    opacity: Any = None
    text: str | None = None
    logo_url: str | None = None


class WatermarkSettings(CamelModel):
    enabled: bool
    position: str
    opacity: float
    text: str
    logo_url: str | None
    updated_at: str | None = None


class LogoUpload(CamelModel):
    url: str
    filename: str
