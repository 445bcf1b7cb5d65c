"""SQLAlchemy models for conversation persistence."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Text, Integer, DateTime, Enum, ForeignKey, Index
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


MESSAGE_ROLES = ("user", "assistant", "system")


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    messages = relationship("Message", back_populates="conversation",
                            order_by="Message.sequence_num", passive_deletes=True)
    files = relationship("File", back_populates="conversation", passive_deletes=True)
    images = relationship("ImageReference", back_populates="conversation",
                          passive_deletes=True)

    __table_args__ = (
        Index("idx_conv_user_updated", "user_id", "updated_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), nullable=False)
    role = Column(Enum(*MESSAGE_ROLES, name="message_role"), nullable=False)
    content = Column(Text, nullable=False)
    sequence_num = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("idx_msg_conv_seq", "conversation_id", "sequence_num"),
        Index("idx_msg_user", "user_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "role": self.role,
            "content": self.content,
            "sequence_num": self.sequence_num,
            "created_at": self.created_at.isoformat(),
        }


class File(Base):
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"))
    message_id = Column(String(36))
    filename = Column(String(255), nullable=False)
    file_key = Column(String(512), nullable=False)
    url = Column(Text, nullable=False)
    mime_type = Column(String(100))
    size = Column(Integer)
    created_at = Column(DateTime, nullable=False, default=_now)

    conversation = relationship("Conversation", back_populates="files")

    __table_args__ = (
        Index("idx_file_conv", "conversation_id"),
        Index("idx_file_user", "user_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "conversation_id": self.conversation_id,
            "message_id": self.message_id,
            "filename": self.filename,
            "file_key": self.file_key,
            "url": self.url,
            "mime_type": self.mime_type,
            "size": self.size,
            "created_at": self.created_at.isoformat(),
        }


class ImageReference(Base):
    __tablename__ = "image_references"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    message_id = Column(String(36))
    user_id = Column(String(36), nullable=False)
    image_url = Column(Text, nullable=False)
    image_key = Column(String(512), nullable=False)
    mime_type = Column(String(100), default="image/png")
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, default=_now)

    conversation = relationship("Conversation", back_populates="images")

    __table_args__ = (
        Index("idx_image_conv", "conversation_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "message_id": self.message_id,
            "user_id": self.user_id,
            "image_url": self.image_url,
            "image_key": self.image_key,
            "mime_type": self.mime_type,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }
