"""
FastAPI API routes: conversations, messages, files and images.
Every route acts on behalf of the authenticated user.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from omnichat.middleware.auth_middleware import get_current_user
from omnichat.middleware.rate_limiter import endpoint_limit, get_limiter
from omnichat.models import User
from omnichat.services.conversation_service import get_conversation_service
from omnichat.services.file_service import get_file_service
from omnichat.services.image_client import SourceImage
from omnichat.services.image_service import get_image_service


router = APIRouter(prefix="/api", tags=["api"])
limiter = get_limiter()


# ---- Conversation Endpoints ----

class CreateConversationRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    files: List[str] = Field(default_factory=list)
    image_references: List[str] = Field(default_factory=list)


@router.post("/conversations", status_code=status.HTTP_201_CREATED)
async def create_conversation(req: CreateConversationRequest, user: User = Depends(get_current_user)):
    svc = get_conversation_service()
    return await svc.create_conversation(user.id, req.title, req.description)


@router.get("/conversations")
async def list_conversations(user: User = Depends(get_current_user)):
    svc = get_conversation_service()
    return await svc.list_conversations(user.id)


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, user: User = Depends(get_current_user)):
    svc = get_conversation_service()
    return await svc.get_conversation(conversation_id, user.id)


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, user: User = Depends(get_current_user)):
    svc = get_conversation_service()
    return await svc.delete_conversation(conversation_id, user.id)


# ---- Message Endpoints ----

@router.get("/conversations/{conversation_id}/messages")
async def get_messages(conversation_id: str, user: User = Depends(get_current_user)):
    svc = get_conversation_service()
    return await svc.get_conversation_messages(conversation_id, user.id)


@router.post("/conversations/{conversation_id}/chat")
@limiter.limit(endpoint_limit("chat_messages"))
async def chat(
    request: Request,
    conversation_id: str,
    req: ChatRequest,
    user: User = Depends(get_current_user),
):
    svc = get_conversation_service()
    return await svc.send_message(
        conversation_id,
        user.id,
        req.message,
        file_ids=req.files,
        image_ids=req.image_references,
    )


@router.delete("/messages/{message_id}")
async def delete_message(message_id: str, user: User = Depends(get_current_user)):
    svc = get_conversation_service()
    return await svc.delete_message(message_id, user.id)


# ---- File Endpoints ----

class UploadFileRequest(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    file_data: str = Field(..., description="base64 encoded file content")
    mime_type: Optional[str] = Field(default=None, max_length=100)


@router.post("/conversations/{conversation_id}/files", status_code=status.HTTP_201_CREATED)
@limiter.limit(endpoint_limit("file_upload"))
async def upload_file(
    request: Request,
    conversation_id: str,
    req: UploadFileRequest,
    user: User = Depends(get_current_user),
):
    svc = get_file_service()
    return await svc.upload_file(
        conversation_id, user.id, req.filename, req.file_data, req.mime_type
    )


@router.get("/conversations/{conversation_id}/files")
async def list_files(conversation_id: str, user: User = Depends(get_current_user)):
    svc = get_file_service()
    return await svc.list_files(conversation_id, user.id)


@router.delete("/files/{file_id}")
async def delete_file(file_id: str, user: User = Depends(get_current_user)):
    svc = get_file_service()
    return await svc.delete_file(file_id, user.id)


# ---- Image Endpoints ----

class OriginalImage(BaseModel):
    url: str = Field(..., min_length=1)
    mime_type: Optional[str] = None


class GenerateImageRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    image_reference_ids: List[str] = Field(default_factory=list)
    original_images: List[OriginalImage] = Field(default_factory=list)


@router.post("/conversations/{conversation_id}/images", status_code=status.HTTP_201_CREATED)
@limiter.limit(endpoint_limit("image_generation"))
async def generate_image(
    request: Request,
    conversation_id: str,
    req: GenerateImageRequest,
    user: User = Depends(get_current_user),
):
    """
    Generate an image, or edit existing ones.

    Args:
        prompt: Text description of the desired image or edit
        image_reference_ids: Images from this conversation to edit
        original_images: Direct image URLs to edit (take precedence)

    Returns:
        The new image reference
    """
    svc = get_image_service()
    return await svc.generate_image(
        conversation_id,
        user.id,
        req.prompt,
        image_reference_ids=req.image_reference_ids,
        original_images=[
            SourceImage(url=img.url, mime_type=img.mime_type or "image/png")
            for img in req.original_images
        ],
    )


@router.get("/conversations/{conversation_id}/images")
async def list_images(conversation_id: str, user: User = Depends(get_current_user)):
    svc = get_image_service()
    return await svc.list_images(conversation_id, user.id)
