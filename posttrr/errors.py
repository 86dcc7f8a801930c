"""HTTP error helpers shared by routers and dependencies."""

from uuid import UUID

from fastapi import HTTPException, status


def api_error(status_code: int, code: str, message: str) -> HTTPException:
    """Build an HTTPException carrying the error code and message."""
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
            }
        },
    )


def validation_error(message: str) -> HTTPException:
    return api_error(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", message)


def not_found(message: str) -> HTTPException:
    return api_error(status.HTTP_404_NOT_FOUND, "NOT_FOUND", message)


def parse_id(value: str, label: str) -> UUID:
    """Parse a path identifier, failing with 400 when it is malformed."""
    try:
        return UUID(value)
    except ValueError:
        raise validation_error(f"Invalid {label} ID") from None
