"""
Image generation gateway: text-to-image and image editing over the
OpenAI-compatible images API. Returns base64 image data; persisting it is the
caller's job.
"""
import base64
import binascii
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog

from omnichat.config import get_config
from omnichat.errors import UpstreamError
from omnichat.services.llm_client import raise_for_upstream

log = structlog.get_logger()


@dataclass
class SourceImage:
    """An existing image to edit, passed to the gateway by URL."""
    url: str
    mime_type: str = "image/png"


@dataclass
class GeneratedImage:
    b64_data: str
    mime_type: str = "image/png"
    revised_prompt: Optional[str] = None

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.b64_data)


class ImageClient:
    """Client for image generation and editing."""

    def __init__(self):
        cfg = get_config().gateway

        self.api_key = cfg.api_key
        self.base_url = cfg.base_url
        self.model = cfg.image_model
        self.size = cfg.image_size
        self.timeout = cfg.timeout_seconds

        self._client: Optional[httpx.AsyncClient] = None

        if not self.api_key:
            log.warning("image_client_no_key", message="OPENAI_API_KEY not set")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        return self._client

    async def generate_image(
        self,
        prompt: str,
        original_images: Optional[List[SourceImage]] = None,
    ) -> GeneratedImage:
        """
        Generate an image from a prompt, or edit the given source images.

        Args:
            prompt: Text description of the desired image or edit
            original_images: Images to edit; each is sent with its URL and MIME type

        Returns:
            GeneratedImage with base64 PNG data

        Raises:
            UpstreamError: missing key, transport failure, error status or empty reply
        """
        if not self.api_key:
            raise UpstreamError("OPENAI_API_KEY is not configured")

        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "n": 1,
            "size": self.size,
        }
        if original_images:
            endpoint = "/images/edits"
            payload["images"] = [
                {"image_url": img.url, "mime_type": img.mime_type}
                for img in original_images
            ]
        else:
            endpoint = "/images/generations"
            payload["response_format"] = "b64_json"

        log.info(
            "image_generate_start",
            prompt=prompt[:100],
            model=self.model,
            edit=bool(original_images),
            sources=len(original_images or []),
        )

        try:
            response = await self.client.post(endpoint, json=payload)
        except httpx.HTTPError as e:
            log.error("image_transport_error", error=str(e))
            raise UpstreamError(f"Image generation request failed: {e}") from e

        raise_for_upstream(response, "Image generation")
        data = response.json()

        items = data.get("data") or []
        if not items or not items[0].get("b64_json"):
            raise UpstreamError("Failed to generate image: no image data in response")

        image_b64 = items[0]["b64_json"]
        try:
            base64.b64decode(image_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise UpstreamError("Failed to generate image: invalid image data") from e

        log.info("image_generate_success", model=self.model)
        return GeneratedImage(
            b64_data=image_b64,
            mime_type="image/png",
            revised_prompt=items[0].get("revised_prompt"),
        )

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            log.info("image_client_closed")


_client: Optional[ImageClient] = None


def get_image_client() -> ImageClient:
    global _client
    if _client is None:
        _client = ImageClient()
    return _client
