"""
Authentication Middleware: FastAPI dependency resolving the calling user.
"""
from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from omnichat.config import get_config
from omnichat.errors import AuthenticationError
from omnichat.models import User
from omnichat.services.auth_service import AuthService, get_auth_service

log = structlog.get_logger()

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """
    Resolve the requesting user.

    Usage in route:
        @router.get("/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}

    A bearer token must verify and name an existing user. Without a token the
    demo user is used when mock auth is enabled.

    Raises:
        AuthenticationError: no usable user context
    """
    if credentials is None:
        if get_config().app.mock_auth:
            return await auth_service.get_mock_user()
        raise AuthenticationError("User not authenticated")

    payload = auth_service.verify_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise AuthenticationError("Invalid or expired token")

    user = await auth_service.get_user_by_id(payload["sub"])
    if user is None:
        log.info("auth_failed", reason="user_not_found", user_id=payload["sub"])
        raise AuthenticationError("User not found")
    return user
