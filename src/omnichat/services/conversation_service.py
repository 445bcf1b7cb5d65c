"""
Conversation Service: conversation lifecycle and the chat turn.
"""
from typing import Dict, List, Optional, Sequence

import structlog

from omnichat.models import File, ImageReference
from omnichat.errors import NotFoundError
from omnichat.services.database import get_session
from omnichat.services.llm_client import (
    extract_text, file_part, get_llm_client, image_part, text_part,
)
from omnichat.services.storage import get_storage
from omnichat.services.store import get_store

log = structlog.get_logger()

FALLBACK_REPLY = "I could not generate a response."


class ConversationService:
    """Ownership-checked conversation operations and the chat pipeline."""

    def __init__(self):
        self.store = get_store()
        self.llm = get_llm_client()
        self.storage = get_storage()

    async def create_conversation(
        self, user_id: str, title: str, description: Optional[str] = None
    ) -> Dict:
        conv = await self.store.create_conversation(user_id, title, description)
        return conv.to_dict()

    async def list_conversations(self, user_id: str) -> List[Dict]:
        """List the user's conversations, newest first."""
        return [c.to_dict() for c in await self.store.list_conversations(user_id)]

    async def get_conversation(self, conversation_id: str, user_id: str) -> Dict:
        conv = await self.store.require_conversation(conversation_id, user_id)
        return conv.to_dict()

    async def delete_conversation(self, conversation_id: str, user_id: str) -> Dict:
        """Delete a conversation and everything in it, then release its blobs."""
        keys = await self.store.delete_conversation(conversation_id, user_id)
        for key in keys:
            self.storage.delete(key)
        return {"success": True}

    async def get_conversation_messages(self, conversation_id: str, user_id: str) -> List[Dict]:
        """Full history, oldest first."""
        return [m.to_dict() for m in await self.store.list_messages(conversation_id, user_id)]

    async def delete_message(self, message_id: str, user_id: str) -> Dict:
        await self.store.delete_message(message_id, user_id)
        return {"success": True}

    async def send_message(
        self,
        conversation_id: str,
        user_id: str,
        content: str,
        file_ids: Sequence[str] = (),
        image_ids: Sequence[str] = (),
    ) -> Dict:
        """
        Run one chat turn and return the assistant reply.

        The model sees the stored history followed by the new user message
        (with any referenced files/images attached as content parts). Both
        messages are written together once the model has answered, so a
        failed turn persists nothing.
        """
        await self.store.require_conversation(conversation_id, user_id)
        files = await self._resolve_files(file_ids, conversation_id, user_id)
        images = await self._resolve_images(image_ids, conversation_id, user_id)

        history = await self.store.list_messages(conversation_id, user_id)
        llm_messages = [{"role": m.role, "content": m.content} for m in history]
        llm_messages.append({
            "role": "user",
            "content": self._user_content(content, files, images),
        })

        log.info(
            "chat_turn_start",
            conversation_id=conversation_id,
            history=len(history),
            files=len(files),
            images=len(images),
        )
        reply_content = await self.llm.chat_completion(messages=llm_messages)
        reply = extract_text(reply_content) or FALLBACK_REPLY

        async with get_session() as session:
            user_msg = await self.store.add_message(
                session, conversation_id, user_id, "user", content
            )
            assistant_msg = await self.store.add_message(
                session, conversation_id, user_id, "assistant", reply
            )
            await self.store.link_to_message(
                session, user_msg.id,
                file_ids=[f.id for f in files],
                image_ids=[i.id for i in images],
            )
            await self.store.touch_conversation(session, conversation_id)

        log.info("chat_turn_complete", conversation_id=conversation_id, message_id=assistant_msg.id)
        return {
            "message": reply,
            "message_id": assistant_msg.id,
            "user_message_id": user_msg.id,
        }

    @staticmethod
    def _user_content(content: str, files: List[File], images: List[ImageReference]):
        if not files and not images:
            return content
        parts = [text_part(content)]
        parts.extend(image_part(img.image_url) for img in images)
        parts.extend(
            file_part(f.url, f.mime_type or "application/octet-stream") for f in files
        )
        return parts

    async def _resolve_files(
        self, file_ids: Sequence[str], conversation_id: str, user_id: str
    ) -> List[File]:
        wanted = set(file_ids or ())
        files = await self.store.get_files(wanted, conversation_id, user_id)
        if len(files) != len(wanted):
            raise NotFoundError("File not found")
        return files

    async def _resolve_images(
        self, image_ids: Sequence[str], conversation_id: str, user_id: str
    ) -> List[ImageReference]:
        wanted = set(image_ids or ())
        images = await self.store.get_image_references(wanted, conversation_id, user_id)
        if len(images) != len(wanted):
            raise NotFoundError("Image reference not found")
        return images


_service: Optional[ConversationService] = None


def get_conversation_service() -> ConversationService:
    global _service
    if _service is None:
        _service = ConversationService()
    return _service
