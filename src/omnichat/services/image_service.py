"""Image generation and editing inside a conversation."""
from typing import Dict, List, Optional, Sequence

import structlog

from omnichat.errors import NotFoundError
from omnichat.services.image_client import SourceImage, get_image_client
from omnichat.services.storage import get_storage, image_key
from omnichat.services.store import get_store

log = structlog.get_logger()


class ImageService:
    def __init__(self):
        self.store = get_store()
        self.images = get_image_client()
        self.storage = get_storage()

    async def generate_image(
        self,
        conversation_id: str,
        user_id: str,
        prompt: str,
        image_reference_ids: Sequence[str] = (),
        original_images: Sequence[SourceImage] = (),
    ) -> Dict:
        """
        Generate a new image, or edit existing ones, and keep it in the conversation.

        Direct `original_images` win over `image_reference_ids`; referenced
        images are resolved to their stored URL and MIME type.
        """
        await self.store.require_conversation(conversation_id, user_id)

        sources: List[SourceImage] = list(original_images or ())
        if not sources and image_reference_ids:
            refs = await self.store.get_image_references(image_reference_ids, conversation_id, user_id)
            if not refs:
                raise NotFoundError("Image reference not found")
            sources = [
                SourceImage(url=ref.image_url, mime_type=ref.mime_type or "image/png")
                for ref in refs
            ]

        if sources:
            log.info("image_edit_sources", conversation_id=conversation_id, count=len(sources))

        generated = await self.images.generate_image(
            prompt=prompt,
            original_images=sources or None,
        )

        stored = self.storage.put(image_key(user_id), generated.to_bytes(), generated.mime_type)
        ref = await self.store.create_image_reference(
            user_id=user_id,
            conversation_id=conversation_id,
            image_url=stored.url,
            image_key=stored.key,
            description=prompt,
            mime_type=generated.mime_type,
        )
        log.info("image_reference_created", image_id=ref.id, conversation_id=conversation_id)
        return ref.to_dict()

    async def list_images(self, conversation_id: str, user_id: str) -> List[Dict]:
        await self.store.require_conversation(conversation_id, user_id)
        refs = await self.store.list_image_references(conversation_id, user_id)
        return [r.to_dict() for r in refs]


_service: Optional[ImageService] = None


def get_image_service() -> ImageService:
    global _service
    if _service is None:
        _service = ImageService()
    return _service
