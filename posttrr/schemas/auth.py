"""Registration schemas."""

import re
from typing import Literal

from pydantic import EmailStr, field_validator

from posttrr.schemas.common import CamelModel


class RegisterRequest(CamelModel):
    """Member registration request schema."""

    username: str
    email: EmailStr
    display_name: str
    user_type: Literal["buyer", "seller", "agent"]

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Validate username format: 3-32 chars, lowercase alphanumeric and underscore only."""
        if not re.match(r"^[a-z0-9_]{3,32}$", v):
            raise ValueError(
                "Username must be 3-32 characters, lowercase letters, numbers, and underscores only"
            )
        return v

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class RegisteredUser(CamelModel):
    """Registration result. ``api_key`` is only ever returned here."""

    user_id: str
    username: str
    email: str
    display_name: str
    user_type: str
    api_key: str
    roles: list[str]
    welcome_notification_sent: bool
