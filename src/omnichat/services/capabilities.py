"""
File-understanding capabilities: audio transcription, file analysis,
multi-file reports and schema-driven data extraction.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import structlog

from omnichat.config import get_config
from omnichat.errors import UpstreamError
from omnichat.services.llm_client import (
    extract_text, file_part, get_llm_client, raise_for_upstream, text_part,
)

log = structlog.get_logger()

ANALYZER_PROMPT = (
    "You are an expert file analyzer. Analyze the provided file and give a "
    "comprehensive summary with key points."
)
REPORT_PROMPT = (
    "You are an expert report generator. Create a comprehensive, well-structured "
    "report based on the provided files and instructions."
)
EXTRACTOR_PROMPT = (
    "You are an expert data extraction specialist. Extract data from the provided "
    "file according to the specified schema."
)

_KEY_POINT_SPLIT = re.compile(r"[\n•\-*]")


@dataclass
class TranscriptionResult:
    text: str
    duration: Optional[float] = None
    language: Optional[str] = None


@dataclass
class FileAnalysisResult:
    summary: str
    key_points: List[str] = field(default_factory=list)
    file_type: str = ""


@dataclass
class FileRef:
    """A file handed to the gateway by URL."""
    url: str
    filename: str
    mime_type: str = "application/octet-stream"


def describe_file_type(mime_type: str) -> str:
    mime = mime_type.lower()
    if "pdf" in mime:
        return "PDF document"
    if "word" in mime or "document" in mime:
        return "Word document"
    if "spreadsheet" in mime or "excel" in mime:
        return "spreadsheet"
    if "text" in mime:
        return "text file"
    if "image" in mime:
        return "image"
    if "audio" in mime:
        return "audio file"
    if "video" in mime:
        return "video file"
    if "zip" in mime or "archive" in mime:
        return "archive file"
    return "file"


def normalize_mime_type(mime_type: str) -> str:
    """Map a MIME type onto the file types the gateway accepts."""
    mime = mime_type.lower()
    if "pdf" in mime:
        return "application/pdf"
    if "mp3" in mime or "mpeg" in mime:
        return "audio/mpeg"
    if "wav" in mime:
        return "audio/wav"
    if "mp4" in mime:
        return "audio/mp4" if "audio" in mime else "video/mp4"
    if "audio" in mime:
        return "audio/mpeg"
    if "video" in mime:
        return "video/mp4"
    return "application/pdf"


def build_analysis_prompt(filename: str, mime_type: str) -> str:
    return (
        f"Please analyze this {describe_file_type(mime_type)} file ({filename}) and provide:\n"
        "1. A comprehensive summary of the content\n"
        "2. Key points and important information\n"
        "3. Any notable patterns or insights\n"
        "4. Recommendations if applicable"
    )


def extract_key_points(text: str, limit: int = 5) -> List[str]:
    """Pick up to `limit` bullet-sized lines (11-199 chars, no links)."""
    points = []
    for chunk in _KEY_POINT_SPLIT.split(text):
        candidate = chunk.strip()
        if 10 < len(candidate) < 200 and "http" not in candidate:
            points.append(candidate)
    return points[:limit]


async def transcribe_audio(
    audio: bytes, filename: str, mime_type: str = "audio/mpeg"
) -> TranscriptionResult:
    """
    Transcribe an audio/video file to text.

    The caller supplies the file content; nothing is downloaded here. It is
    posted as multipart form data to the transcription endpoint.
    """
    cfg = get_config().gateway
    if not cfg.api_key:
        raise UpstreamError("OPENAI_API_KEY is not configured")

    log.info("transcription_start", filename=filename, mime_type=mime_type, size=len(audio))
    async with httpx.AsyncClient(timeout=cfg.timeout_seconds) as client:
        try:
            response = await client.post(
                f"{cfg.base_url.rstrip('/')}/audio/transcriptions",
                headers={"Authorization": f"Bearer {cfg.api_key}"},
                data={"model": cfg.transcription_model, "response_format": "verbose_json"},
                files={"file": (filename, audio, normalize_mime_type(mime_type))},
            )
        except httpx.HTTPError as e:
            log.error("transcription_transport_error", error=str(e))
            raise UpstreamError(f"Transcription failed: {e}") from e

    raise_for_upstream(response, "Transcription")
    data = response.json()
    text = data.get("text", "")
    log.info("transcription_complete", text_length=len(text))
    return TranscriptionResult(
        text=text,
        duration=data.get("duration"),
        language=data.get("language"),
    )


async def analyze_file(
    file_url: str, filename: str, mime_type: str, user_prompt: Optional[str] = None
) -> FileAnalysisResult:
    """Summarize a file and pull out its key points."""
    prompt = user_prompt or build_analysis_prompt(filename, mime_type)
    messages = [
        {"role": "system", "content": ANALYZER_PROMPT},
        {"role": "user", "content": [
            text_part(prompt),
            file_part(file_url, normalize_mime_type(mime_type)),
        ]},
    ]
    log.info("file_analysis_start", filename=filename, mime_type=mime_type)
    content = await get_llm_client().chat_completion(messages, max_tokens=2000)
    summary = extract_text(content)
    return FileAnalysisResult(
        summary=summary,
        key_points=extract_key_points(summary),
        file_type=mime_type,
    )


async def generate_report(files: List[FileRef], report_prompt: str) -> str:
    """Write one report covering every given file."""
    parts = [text_part(report_prompt)]
    parts.extend(file_part(f.url, normalize_mime_type(f.mime_type)) for f in files)
    messages = [
        {"role": "system", "content": REPORT_PROMPT},
        {"role": "user", "content": parts},
    ]
    log.info("report_start", files=len(files))
    content = await get_llm_client().chat_completion(messages, max_tokens=4000)
    return extract_text(content)


async def extract_structured_data(
    file_url: str,
    filename: str,
    mime_type: str,
    schema: Dict[str, Any],
    schema_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Extract data matching a caller-supplied JSON schema.

    The schema is passed through untouched. A reply that is not a JSON object
    comes back as {"raw_response": <text>}.
    """
    messages = [
        {"role": "system", "content": EXTRACTOR_PROMPT},
        {"role": "user", "content": [
            text_part("Extract all relevant data from this file according to the provided schema."),
            file_part(file_url, normalize_mime_type(mime_type)),
        ]},
    ]
    log.info("extraction_start", filename=filename)
    content = await get_llm_client().chat_completion(
        messages,
        output_schema={"name": schema_name or "ExtractedData", "schema": schema},
    )
    raw = extract_text(content)
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        log.warning("extraction_not_json", filename=filename)
        return {"raw_response": raw}
    if not isinstance(parsed, dict):
        return {"raw_response": raw}
    return parsed
