"""
Authentication Service: user upsert, JWT session tokens, demo login.

Identity is external (or mocked); this service only maps an open id to a user
row and signs/verifies session tokens.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from omnichat.config import get_config
from omnichat.models import User
from omnichat.services.database import get_session

log = structlog.get_logger()

MOCK_USER_OPEN_ID = "mock-user-123"
MOCK_USER_NAME = "OpenSource User"
MOCK_USER_EMAIL = "opensource@example.com"

_DEV_SECRET = "omnichat-development-secret-change-me"


class AuthService:
    """Session token management and user lookup."""

    def __init__(self):
        self.cfg = get_config()
        self.algorithm = self.cfg.auth.jwt_algorithm
        self.expire_minutes = self.cfg.auth.access_token_expire_minutes
        self.secret_key = self._resolve_secret_key()

    def _resolve_secret_key(self) -> str:
        key = self.cfg.auth.jwt_secret
        if key:
            return key
        if self.cfg.app.env == "production" and not self.cfg.app.mock_auth:
            raise ValueError("JWT_SECRET must be set when mock auth is disabled in production")
        log.warning("jwt_secret_missing", message="Using development signing secret")
        return _DEV_SECRET

    def create_access_token(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            "sub": str(user.id),
            "open_id": user.open_id,
            "role": user.role,
            "type": "access",
            "iat": now,
            "exp": now + timedelta(minutes=self.expire_minutes),
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Decode a session token; None if invalid, expired or the wrong type."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            log.warning("jwt_verification_failed", error=str(e))
            return None
        if payload.get("type") != "access":
            log.warning("token_type_mismatch", actual=payload.get("type"))
            return None
        return payload

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        async with get_session() as session:
            return await session.get(User, str(user_id))

    async def upsert_user(
        self,
        open_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        login_method: Optional[str] = None,
        role: Optional[str] = None,
    ) -> User:
        """Create the user for an open id, or refresh its profile and sign-in time."""
        if not open_id:
            raise ValueError("User open_id is required for upsert")

        profile = {"name": name, "email": email, "login_method": login_method, "role": role}
        try:
            return await self._upsert(open_id, profile)
        except IntegrityError:
            # Another request inserted the same open_id first; its row is visible now.
            log.info("user_upsert_conflict", open_id=open_id)
            return await self._upsert(open_id, profile)

    async def _find_user(self, session, open_id: str) -> Optional[User]:
        result = await session.execute(select(User).where(User.open_id == open_id))
        return result.scalar_one_or_none()

    async def _upsert(self, open_id: str, profile: Dict[str, Optional[str]]) -> User:
        async with get_session() as session:
            user = await self._find_user(session, open_id)
            if user is None:
                user = User(open_id=open_id, role=profile["role"] or "user")
                session.add(user)
                log.info("user_created", open_id=open_id)
            for field, value in profile.items():
                if value is not None:
                    setattr(user, field, value)
            user.last_signed_in = datetime.now(timezone.utc)
            await session.flush()
            await session.refresh(user)
            return user

    async def get_mock_user(self) -> User:
        """The single demo user used when mock auth is on."""
        return await self.upsert_user(
            open_id=MOCK_USER_OPEN_ID,
            name=MOCK_USER_NAME,
            email=MOCK_USER_EMAIL,
            login_method="mock",
        )


_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get singleton AuthService instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
