"""File uploads: decode, size-check, store the blob, record metadata."""
import base64
import binascii
import mimetypes
from typing import Dict, List, Optional

import structlog

from omnichat.config import get_config
from omnichat.errors import InvalidInputError, PayloadTooLargeError
from omnichat.services.storage import file_key, get_storage
from omnichat.services.store import get_store

log = structlog.get_logger()

DEFAULT_MIME_TYPE = "application/octet-stream"


def decode_payload(file_data: str) -> bytes:
    """Decode a base64 payload, tolerating a `data:...;base64,` prefix."""
    if file_data.startswith("data:") and "," in file_data:
        file_data = file_data.split(",", 1)[1]
    try:
        return base64.b64decode(file_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError("File data is not valid base64") from e


def guess_mime_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_MIME_TYPE


class FileService:
    def __init__(self):
        self.store = get_store()
        self.storage = get_storage()
        self.max_bytes = get_config().storage.max_upload_bytes

    async def upload_file(
        self,
        conversation_id: str,
        user_id: str,
        filename: str,
        file_data: str,
        mime_type: Optional[str] = None,
    ) -> Dict:
        """
        Store an uploaded file and record it in the conversation.

        Oversized or undecodable payloads are rejected before anything is
        written to storage or the database.
        """
        await self.store.require_conversation(conversation_id, user_id)

        data = decode_payload(file_data)
        if len(data) > self.max_bytes:
            limit_mb = self.max_bytes / 1024 / 1024
            raise PayloadTooLargeError(
                f"File is too large. Maximum size is {limit_mb:.0f}MB, "
                f"got {len(data) / 1024 / 1024:.2f}MB"
            )

        mime = mime_type or guess_mime_type(filename)
        stored = self.storage.put(file_key(user_id, filename), data, mime)

        record = await self.store.create_file(
            user_id=user_id,
            filename=filename,
            file_key=stored.key,
            url=stored.url,
            mime_type=mime,
            size=stored.size,
            conversation_id=conversation_id,
        )
        log.info("file_uploaded", file_id=record.id, conversation_id=conversation_id, size=stored.size)
        return record.to_dict()

    async def list_files(self, conversation_id: str, user_id: str) -> List[Dict]:
        await self.store.require_conversation(conversation_id, user_id)
        return [f.to_dict() for f in await self.store.list_files(conversation_id, user_id)]

    async def delete_file(self, file_id: str, user_id: str) -> Dict:
        record = await self.store.delete_file(file_id, user_id)
        self.storage.delete(record.file_key)
        return {"success": True}


_service: Optional[FileService] = None


def get_file_service() -> FileService:
    global _service
    if _service is None:
        _service = FileService()
    return _service
