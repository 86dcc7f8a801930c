"""Pydantic schemas for request/response validation."""

from posttrr.schemas.common import ApiResponse, CamelModel, MessageResponse
from posttrr.schemas.notifications import SendNotificationRequest
from posttrr.schemas.watermark import WatermarkSettingsUpdate

__all__ = [
    "ApiResponse",
    "CamelModel",
    "MessageResponse",
    "SendNotificationRequest",
    "WatermarkSettingsUpdate",
]
