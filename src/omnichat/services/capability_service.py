"""
Advanced capability handlers. Each one guards the conversation, makes a single
gateway call about a file, and records the outcome as an assistant message.
"""
import json
from typing import Any, Dict, Optional, Sequence, Tuple

import structlog

from omnichat.config import get_config
from omnichat.errors import InvalidInputError, NotFoundError, PayloadTooLargeError
from omnichat.services import capabilities
from omnichat.services.capabilities import FileRef
from omnichat.services.storage import get_storage
from omnichat.services.store import get_store

log = structlog.get_logger()


class CapabilityService:
    def __init__(self):
        self.store = get_store()
        self.storage = get_storage()

    async def _resolve_file(
        self,
        user_id: str,
        file_id: Optional[str],
        file_url: Optional[str],
        filename: Optional[str],
        mime_type: Optional[str],
        default_mime: str,
    ) -> FileRef:
        """Turn an owned file id, or a direct URL, into a gateway file reference."""
        if file_id:
            record = await self.store.get_file(file_id, user_id)
            if record is None:
                raise NotFoundError("File not found or unauthorized")
            return FileRef(
                url=record.url,
                filename=record.filename,
                mime_type=mime_type or record.mime_type or default_mime,
            )
        if not file_url:
            raise InvalidInputError("Either file_id or file_url is required")
        name = filename or file_url.rsplit("/", 1)[-1] or "file"
        return FileRef(url=file_url, filename=name, mime_type=mime_type or default_mime)

    async def _read_stored_audio(
        self,
        user_id: str,
        file_id: Optional[str],
        file_url: Optional[str],
        mime_type: Optional[str],
    ) -> Tuple[bytes, str, str]:
        """
        Load audio that this service stored: an owned upload by id, or one of
        our own storage URLs. Any other URL is refused.
        """
        if file_id:
            record = await self.store.get_file(file_id, user_id)
            if record is None:
                raise NotFoundError("File not found or unauthorized")
            key = record.file_key
            filename = record.filename
            mime = mime_type or record.mime_type or "audio/mpeg"
        else:
            key = self.storage.key_for_url(file_url or "")
            if key is None or not key.startswith(f"{user_id}/"):
                raise InvalidInputError("Only files uploaded to this service can be transcribed")
            filename = key.rsplit("/", 1)[-1]
            mime = mime_type or "audio/mpeg"

        max_bytes = get_config().storage.max_upload_bytes
        try:
            if self.storage.size(key) > max_bytes:
                raise PayloadTooLargeError(
                    f"Audio is too large. Maximum size is {max_bytes / 1024 / 1024:.0f}MB"
                )
            audio = self.storage.read(key)
        except FileNotFoundError as e:
            raise NotFoundError("Stored file not found") from e
        return audio, filename, mime

    async def transcribe(
        self,
        conversation_id: str,
        user_id: str,
        file_id: Optional[str] = None,
        file_url: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        await self.store.require_conversation(conversation_id, user_id)
        audio, filename, mime = await self._read_stored_audio(user_id, file_id, file_url, mime_type)

        result = await capabilities.transcribe_audio(audio, filename, mime)
        message = await self.store.create_message(
            conversation_id, user_id, "assistant",
            f"Audio Transcription:\n\n{result.text}",
        )
        return {
            "success": True,
            "transcription": result.text,
            "duration": result.duration,
            "language": result.language,
            "message_id": message.id,
        }

    async def analyze(
        self,
        conversation_id: str,
        user_id: str,
        file_id: Optional[str] = None,
        file_url: Optional[str] = None,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
        user_prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        await self.store.require_conversation(conversation_id, user_id)
        ref = await self._resolve_file(
            user_id, file_id, file_url, filename, mime_type, "application/octet-stream"
        )

        analysis = await capabilities.analyze_file(ref.url, ref.filename, ref.mime_type, user_prompt)
        message = await self.store.create_message(
            conversation_id, user_id, "assistant",
            f"File Analysis: {ref.filename}\n\n{analysis.summary}",
        )
        return {
            "success": True,
            "analysis": {
                "summary": analysis.summary,
                "key_points": analysis.key_points,
                "file_type": analysis.file_type,
            },
            "message_id": message.id,
        }

    async def report(
        self,
        conversation_id: str,
        user_id: str,
        file_ids: Sequence[str],
        report_prompt: str,
    ) -> Dict[str, Any]:
        await self.store.require_conversation(conversation_id, user_id)
        selected = await self.store.get_files(file_ids, conversation_id, user_id)
        if not selected:
            raise InvalidInputError("No files found for report generation")

        report = await capabilities.generate_report(
            [
                FileRef(
                    url=f.url,
                    filename=f.filename,
                    mime_type=f.mime_type or "application/octet-stream",
                )
                for f in selected
            ],
            report_prompt,
        )
        message = await self.store.create_message(
            conversation_id, user_id, "assistant", f"Generated Report\n\n{report}",
        )
        log.info("report_saved", conversation_id=conversation_id, files=len(selected))
        return {"success": True, "report": report, "message_id": message.id}

    async def extract(
        self,
        conversation_id: str,
        user_id: str,
        schema: Dict[str, Any],
        schema_name: Optional[str] = None,
        file_id: Optional[str] = None,
        file_url: Optional[str] = None,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        await self.store.require_conversation(conversation_id, user_id)
        ref = await self._resolve_file(
            user_id, file_id, file_url, filename, mime_type, "application/octet-stream"
        )

        data = await capabilities.extract_structured_data(
            ref.url, ref.filename, ref.mime_type, schema, schema_name
        )
        pretty = json.dumps(data, indent=2, ensure_ascii=False)
        message = await self.store.create_message(
            conversation_id, user_id, "assistant",
            f"Data Extraction from {ref.filename}\n\n```json\n{pretty}\n```",
        )
        return {"success": True, "data": data, "message_id": message.id}


_service: Optional[CapabilityService] = None


def get_capability_service() -> CapabilityService:
    global _service
    if _service is None:
        _service = CapabilityService()
    return _service
