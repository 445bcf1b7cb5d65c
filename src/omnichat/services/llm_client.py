"""
Language-model gateway: OpenAI-compatible chat completions over httpx.
Returns the raw assistant content, which may be a plain string or a list of
content parts; `extract_text` resolves either shape.
"""
from typing import Any, Dict, List, Optional, Union

import httpx
import structlog

from omnichat.config import get_config
from omnichat.errors import UpstreamError

log = structlog.get_logger()

ContentPart = Dict[str, Any]
MessageContent = Union[str, List[ContentPart]]


def extract_text(content: Any, default: str = "") -> str:
    """
    Resolve a completion's content to text.

    A string is returned unchanged; a list of parts yields the text of its
    first `{"type": "text"}` part; anything else yields `default`.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text" and "text" in part:
                return part["text"]
    return default


def text_part(text: str) -> ContentPart:
    return {"type": "text", "text": text}


def image_part(url: str) -> ContentPart:
    return {"type": "image_url", "image_url": {"url": url}}


def file_part(url: str, mime_type: str) -> ContentPart:
    return {"type": "file_url", "file_url": {"url": url, "mime_type": mime_type}}


def raise_for_upstream(response: httpx.Response, service: str):
    """Turn a non-2xx gateway response into UpstreamError with its detail."""
    if response.is_success:
        return
    detail = response.text[:500] if response.content else ""
    message = f"{service} request failed ({response.status_code} {response.reason_phrase})"
    if detail:
        message += f": {detail}"
    log.error("gateway_http_error", service=service, status=response.status_code)
    raise UpstreamError(message)


class LLMClient:
    """Async client for the chat completion endpoint."""

    def __init__(self):
        self.cfg = get_config().gateway
        self._client: Optional[httpx.AsyncClient] = None

        if not self.cfg.api_key:
            log.warning("llm_client_no_key", message="OPENAI_API_KEY not set")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.cfg.base_url,
                headers={
                    "Authorization": f"Bearer {self.cfg.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.cfg.timeout_seconds, connect=10.0),
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            log.info("llm_client_closed")

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        output_schema: Optional[Dict[str, Any]] = None,
    ) -> MessageContent:
        """
        Non-streaming chat completion.

        Args:
            messages: Ordered role/content dicts (content may be a parts list)
            max_tokens: Completion budget, config default if None
            temperature: Sampling temperature, config default if None
            output_schema: {"name": ..., "schema": {...}} to request JSON output

        Returns:
            The first choice's message content, string or list of parts.
        """
        if not self.cfg.api_key:
            raise UpstreamError("OPENAI_API_KEY is not configured")

        payload: Dict[str, Any] = {
            "model": self.cfg.chat_model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.cfg.temperature,
            "max_tokens": max_tokens or self.cfg.max_tokens,
        }
        if output_schema:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": output_schema.get("name", "ExtractedData"),
                    "schema": output_schema["schema"],
                },
            }

        log.info("llm_request", model=payload["model"], messages=len(messages))
        try:
            response = await self.client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            log.error("llm_transport_error", error=str(e))
            raise UpstreamError(f"Language model request failed: {e}") from e

        raise_for_upstream(response, "Language model")
        data = response.json()

        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""


_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    global _client
    if _client is None:
        _client = LLMClient()
    return _client
