"""Rate limiting for registration and logo uploads using slowapi."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

# IP-keyed; limits are declared per endpoint from settings
limiter = Limiter(key_func=get_remote_address)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render a 429 in the standard error envelope."""
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": f"Rate limit exceeded: {exc.detail}",
            "code": "RATE_LIMITED",
            "request_id": getattr(request.state, "request_id", None),
        },
    )


def reset_limiter() -> None:
    """Clear stored hits. Used in tests."""
    limiter.reset()
