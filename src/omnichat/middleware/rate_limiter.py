"""
Rate Limiting Middleware using SlowAPI.

Per-user, per-endpoint limits on the expensive routes (chat turns, image
generation, uploads, capabilities). Users are keyed by the JWT subject,
anonymous callers by IP address.
"""
from typing import Callable, Optional

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from omnichat.config import get_config

log = structlog.get_logger()

DISABLED_LIMIT = "10000/minute"


def get_user_identifier(request: Request) -> str:
    """
    Extract the rate-limit key for a request.

    Priority:
    1. User ID from the bearer token (signature is checked by the auth dependency)
    2. Client IP address
    """
    auth_header = request.headers.get("Authorization", "")

    if auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer "):].strip()
        try:
            user_id = jwt.get_unverified_claims(token).get("sub")
            if user_id:
                return f"user:{user_id}"
        except (JWTError, AttributeError) as e:
            log.debug(
                "rate_limit_jwt_decode_failed",
                error=str(e),
                method=request.method,
                path=request.url.path,
            )

    return f"ip:{get_remote_address(request)}"


def create_limiter() -> Limiter:
    """Create the SlowAPI limiter from the rate_limits config section."""
    cfg = get_config().rate_limits

    if not cfg.enabled:
        log.warning("rate_limiting_disabled", reason="not enabled in config")
        return Limiter(
            key_func=get_user_identifier,
            storage_uri="memory://",
            default_limits=[DISABLED_LIMIT],
        )

    limiter = Limiter(
        key_func=get_user_identifier,
        storage_uri=cfg.storage_uri,
        default_limits=[cfg.default_limit],
    )
    log.info(
        "rate_limiter_initialized",
        storage=cfg.storage_uri.split(":")[0],
        default_limit=cfg.default_limit,
    )
    return limiter


def endpoint_limit(name: str) -> Callable[[], str]:
    """Limit provider for one endpoint group, read from config at request time."""
    def provider() -> str:
        cfg = get_config().rate_limits
        if not cfg.enabled:
            return DISABLED_LIMIT
        return getattr(cfg.endpoints, name)
    return provider


_limiter: Optional[Limiter] = None


def get_limiter() -> Limiter:
    global _limiter
    if _limiter is None:
        _limiter = create_limiter()
    return _limiter


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 response with a Retry-After header."""
    identifier = get_user_identifier(request)

    log.warning(
        "rate_limit_exceeded",
        identifier=identifier,
        path=request.url.path,
        method=request.method,
        limit=getattr(exc, "detail", "unknown"),
    )

    retry_after = getattr(exc, "retry_after", 60)

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please slow down.",
            "detail": str(exc),
            "retry_after_seconds": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )
