"""
Owner-scoped data access for conversations, messages, files and image references.

Every accessor takes the requesting user's id and filters on it, so a row
belonging to another user is indistinguishable from a missing one.
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from omnichat.errors import NotFoundError, OwnershipError
from omnichat.models import Conversation, File, ImageReference, Message
from omnichat.services.database import get_session

log = structlog.get_logger()


class ChatStore:
    """Persistence accessors, one short transaction per call."""

    # ---- Conversations ----

    async def create_conversation(
        self, user_id: str, title: str, description: Optional[str] = None
    ) -> Conversation:
        async with get_session() as session:
            conv = Conversation(user_id=user_id, title=title, description=description or None)
            session.add(conv)
            await session.flush()
            await session.refresh(conv)
        log.info("conversation_created", conversation_id=conv.id, user_id=user_id)
        return conv

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        """All conversations of a user, most recently active first."""
        async with get_session() as session:
            result = await session.execute(
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .order_by(Conversation.updated_at.desc())
            )
            return list(result.scalars().all())

    async def get_conversation(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        async with get_session() as session:
            return await self._owned_conversation(session, conversation_id, user_id)

    async def require_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        """Ownership guard for conversation-scoped operations."""
        conv = await self.get_conversation(conversation_id, user_id)
        if conv is None:
            raise NotFoundError("Conversation not found")
        return conv

    async def touch_conversation(self, session: AsyncSession, conversation_id: str):
        await session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=datetime.now(timezone.utc))
        )

    async def delete_conversation(self, conversation_id: str, user_id: str) -> List[str]:
        """
        Delete a conversation with its messages, files and image references.

        Runs in a single transaction: either every row goes or none does.
        Returns the storage keys of the deleted files.
        """
        async with get_session() as session:
            conv = await self._owned_conversation(session, conversation_id, user_id)
            if conv is None:
                raise NotFoundError("Conversation not found or not owned by user")

            keys = (await session.execute(
                select(File.file_key).where(File.conversation_id == conversation_id)
            )).scalars().all()

            await session.execute(delete(Message).where(Message.conversation_id == conversation_id))
            await session.execute(delete(File).where(File.conversation_id == conversation_id))
            await session.execute(
                delete(ImageReference).where(ImageReference.conversation_id == conversation_id)
            )
            await session.execute(delete(Conversation).where(Conversation.id == conversation_id))

        log.info("conversation_deleted", conversation_id=conversation_id, files=len(keys))
        return list(keys)

    # ---- Messages ----

    async def create_message(
        self, conversation_id: str, user_id: str, role: str, content: str
    ) -> Message:
        async with get_session() as session:
            return await self.add_message(session, conversation_id, user_id, role, content)

    async def add_message(
        self, session: AsyncSession, conversation_id: str, user_id: str,
        role: str, content: str,
    ) -> Message:
        """Append a message inside the caller's transaction."""
        result = await session.execute(
            select(func.max(Message.sequence_num))
            .where(Message.conversation_id == conversation_id)
        )
        max_seq = result.scalar() or 0

        msg = Message(
            conversation_id=conversation_id,
            user_id=user_id,
            role=role,
            content=content,
            sequence_num=max_seq + 1,
        )
        session.add(msg)
        await session.flush()
        await session.refresh(msg)
        return msg

    async def list_messages(self, conversation_id: str, user_id: str) -> List[Message]:
        """Full ordered history of an owned conversation."""
        async with get_session() as session:
            if await self._owned_conversation(session, conversation_id, user_id) is None:
                raise NotFoundError("Conversation not found")
            result = await session.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.sequence_num.asc())
            )
            return list(result.scalars().all())

    async def delete_message(self, message_id: str, user_id: str):
        async with get_session() as session:
            msg = await session.get(Message, message_id)
            if msg is None:
                raise NotFoundError("Message not found")
            if msg.user_id != user_id:
                raise OwnershipError("Message not owned by user")
            await session.execute(delete(Message).where(Message.id == message_id))
        log.info("message_deleted", message_id=message_id)

    # ---- Files ----

    async def create_file(
        self,
        user_id: str,
        filename: str,
        file_key: str,
        url: str,
        mime_type: Optional[str] = None,
        size: Optional[int] = None,
        conversation_id: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> File:
        async with get_session() as session:
            record = File(
                user_id=user_id,
                filename=filename,
                file_key=file_key,
                url=url,
                mime_type=mime_type,
                size=size,
                conversation_id=conversation_id,
                message_id=message_id,
            )
            session.add(record)
            await session.flush()
            await session.refresh(record)
            return record

    async def list_files(self, conversation_id: str, user_id: str) -> List[File]:
        async with get_session() as session:
            result = await session.execute(
                select(File)
                .where(File.conversation_id == conversation_id, File.user_id == user_id)
                .order_by(File.created_at.asc())
            )
            return list(result.scalars().all())

    async def get_file(self, file_id: str, user_id: str) -> Optional[File]:
        async with get_session() as session:
            result = await session.execute(
                select(File).where(File.id == file_id, File.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def get_files(
        self, file_ids: Iterable[str], conversation_id: str, user_id: str
    ) -> List[File]:
        """Owned files of one conversation, restricted to the given ids."""
        ids = list(file_ids)
        if not ids:
            return []
        async with get_session() as session:
            result = await session.execute(
                select(File)
                .where(
                    File.id.in_(ids),
                    File.conversation_id == conversation_id,
                    File.user_id == user_id,
                )
                .order_by(File.created_at.asc())
            )
            return list(result.scalars().all())

    async def delete_file(self, file_id: str, user_id: str) -> File:
        async with get_session() as session:
            result = await session.execute(
                select(File).where(File.id == file_id, File.user_id == user_id)
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise NotFoundError("File not found or unauthorized")
            await session.delete(record)
        log.info("file_deleted", file_id=file_id)
        return record

    # ---- Image references ----

    async def create_image_reference(
        self,
        user_id: str,
        conversation_id: str,
        image_url: str,
        image_key: str,
        description: Optional[str] = None,
        message_id: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> ImageReference:
        async with get_session() as session:
            ref = ImageReference(
                user_id=user_id,
                conversation_id=conversation_id,
                image_url=image_url,
                image_key=image_key,
                mime_type=mime_type or "image/png",
                description=description or None,
                message_id=message_id,
            )
            session.add(ref)
            await session.flush()
            await session.refresh(ref)
            return ref

    async def list_image_references(self, conversation_id: str, user_id: str) -> List[ImageReference]:
        async with get_session() as session:
            result = await session.execute(
                select(ImageReference)
                .where(
                    ImageReference.conversation_id == conversation_id,
                    ImageReference.user_id == user_id,
                )
                .order_by(ImageReference.created_at.asc())
            )
            return list(result.scalars().all())

    async def get_image_references(
        self, image_ids: Iterable[str], conversation_id: str, user_id: str
    ) -> List[ImageReference]:
        ids = list(image_ids)
        if not ids:
            return []
        async with get_session() as session:
            result = await session.execute(
                select(ImageReference)
                .where(
                    ImageReference.id.in_(ids),
                    ImageReference.conversation_id == conversation_id,
                    ImageReference.user_id == user_id,
                )
                .order_by(ImageReference.created_at.asc())
            )
            return list(result.scalars().all())

    async def link_to_message(
        self, session: AsyncSession, message_id: str,
        file_ids: Iterable[str] = (), image_ids: Iterable[str] = (),
    ):
        """Attach files and image references to the message that used them."""
        file_ids, image_ids = list(file_ids), list(image_ids)
        if file_ids:
            await session.execute(
                update(File).where(File.id.in_(file_ids)).values(message_id=message_id)
            )
        if image_ids:
            await session.execute(
                update(ImageReference)
                .where(ImageReference.id.in_(image_ids))
                .values(message_id=message_id)
            )

    # ---- Helpers ----

    async def _owned_conversation(
        self, session: AsyncSession, conversation_id: str, user_id: str
    ) -> Optional[Conversation]:
        result = await session.execute(
            select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()


_store: Optional[ChatStore] = None


def get_store() -> ChatStore:
    global _store
    if _store is None:
        _store = ChatStore()
    return _store
