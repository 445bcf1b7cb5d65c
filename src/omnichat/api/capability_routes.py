"""
Advanced capability routes: transcription, analysis, reports, extraction.
A file is named either by an uploaded file id or by a direct URL.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, model_validator

from omnichat.middleware.auth_middleware import get_current_user
from omnichat.middleware.rate_limiter import endpoint_limit, get_limiter
from omnichat.models import User
from omnichat.services.capability_service import get_capability_service

router = APIRouter(prefix="/api", tags=["capabilities"])
limiter = get_limiter()

_URL_PATTERN = r"^https?://"


class FileTarget(BaseModel):
    file_id: Optional[str] = None
    file_url: Optional[str] = Field(default=None, pattern=_URL_PATTERN)
    mime_type: Optional[str] = None

    @model_validator(mode="after")
    def require_file(self):
        if not self.file_id and not self.file_url:
            raise ValueError("Either file_id or file_url is required")
        return self


class TranscribeRequest(FileTarget):
    pass


class AnalyzeRequest(FileTarget):
    filename: Optional[str] = None
    user_prompt: Optional[str] = None


class ReportRequest(BaseModel):
    file_ids: List[str] = Field(..., min_length=1)
    report_prompt: str = Field(..., min_length=1)


class ExtractRequest(FileTarget):
    filename: Optional[str] = None
    schema_: Dict[str, Any] = Field(..., alias="schema")
    schema_name: Optional[str] = None


@router.post("/conversations/{conversation_id}/transcribe")
@limiter.limit(endpoint_limit("capabilities"))
async def transcribe_audio(
    request: Request,
    conversation_id: str,
    req: TranscribeRequest,
    user: User = Depends(get_current_user),
):
    svc = get_capability_service()
    return await svc.transcribe(
        conversation_id, user.id,
        file_id=req.file_id, file_url=req.file_url, mime_type=req.mime_type,
    )


@router.post("/conversations/{conversation_id}/analyze")
@limiter.limit(endpoint_limit("capabilities"))
async def analyze_file(
    request: Request,
    conversation_id: str,
    req: AnalyzeRequest,
    user: User = Depends(get_current_user),
):
    svc = get_capability_service()
    return await svc.analyze(
        conversation_id, user.id,
        file_id=req.file_id, file_url=req.file_url, filename=req.filename,
        mime_type=req.mime_type, user_prompt=req.user_prompt,
    )


@router.post("/conversations/{conversation_id}/report")
@limiter.limit(endpoint_limit("capabilities"))
async def generate_report(
    request: Request,
    conversation_id: str,
    req: ReportRequest,
    user: User = Depends(get_current_user),
):
    svc = get_capability_service()
    return await svc.report(conversation_id, user.id, req.file_ids, req.report_prompt)


@router.post("/conversations/{conversation_id}/extract")
@limiter.limit(endpoint_limit("capabilities"))
async def extract_data(
    request: Request,
    conversation_id: str,
    req: ExtractRequest,
    user: User = Depends(get_current_user),
):
    """The schema is forwarded to the gateway as given."""
    svc = get_capability_service()
    return await svc.extract(
        conversation_id, user.id,
        schema=req.schema_, schema_name=req.schema_name,
        file_id=req.file_id, file_url=req.file_url, filename=req.filename,
        mime_type=req.mime_type,
    )
