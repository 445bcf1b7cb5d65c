"""
Authentication API Routes: current user and demo session tokens.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
import structlog

from omnichat.config import get_config
from omnichat.errors import AuthenticationError
from omnichat.middleware.auth_middleware import get_current_user
from omnichat.models import User
from omnichat.services.auth_service import AuthService, get_auth_service

log = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["authentication"])


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


@router.post("/token", response_model=TokenResponse)
async def issue_demo_token(auth_service: AuthService = Depends(get_auth_service)):
    """
    Issue a session token for the demo user.

    Only available while mock auth is enabled; real deployments put their own
    identity provider in front and sign tokens with the same secret.
    """
    if not get_config().app.mock_auth:
        raise AuthenticationError("Demo login is disabled")

    user = await auth_service.get_mock_user()
    log.info("demo_token_issued", user_id=user.id)
    return TokenResponse(
        access_token=auth_service.create_access_token(user),
        expires_in=auth_service.expire_minutes * 60,
    )


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return user.to_dict()
