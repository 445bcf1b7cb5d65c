"""
User model. Identity comes from an external provider (or the demo login), so
there is no password material here, only the provider's open id.
"""
from sqlalchemy import Column, DateTime, Enum, String, Text

from omnichat.models.conversation import Base, _now, _uuid


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    open_id = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(Text)
    email = Column(String(320))
    login_method = Column(String(64))
    role = Column(Enum("user", "admin", name="user_role"), nullable=False, default="user")

    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)
    last_signed_in = Column(DateTime, default=_now, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, open_id='{self.open_id}')>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "open_id": self.open_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "last_signed_in": self.last_signed_in.isoformat() if self.last_signed_in else None,
        }
