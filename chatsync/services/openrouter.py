# chatsync/services/openrouter.py
import logging
from typing import AsyncIterator, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from chatsync.core.config import settings
from chatsync.core.errors import UpstreamError
from chatsync.core.http import upstream_message
from chatsync.services.model_registry import DEFAULT_CHAT_MODEL, DEFAULT_IMAGE_MODEL

logger = logging.getLogger(__name__)


class CompletionMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class CompletionRequest(BaseModel):
    model: str = DEFAULT_CHAT_MODEL
    messages: List[CompletionMessage]
    stream: bool = False
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class ImageRequest(BaseModel):
    prompt: str = Field(min_length=1)
    model: str = DEFAULT_IMAGE_MODEL


def _headers() -> Dict[str, str]:
    if not settings.OPENROUTER_API_KEY:
        raise UpstreamError("OpenRouter API key not configured")
    return {
        "Authorization": f"Bearer {settings.OPENROUTER_API_KEY}",
        "Content-Type": "application/json",
        "HTTP-Referer": settings.SITE_URL,
        "X-Title": settings.APP_TITLE,
    }


def _completion_body(request: CompletionRequest, stream: bool) -> dict:
    return {
        "model": request.model,
        "messages": [m.model_dump() for m in request.messages],
        "stream": stream,
        "temperature": request.temperature if request.temperature is not None else settings.LLM_TEMPERATURE,
        "max_tokens": request.max_tokens or settings.LLM_MAX_TOKENS,
    }


async def complete(client: httpx.AsyncClient, request: CompletionRequest) -> dict:
    """Single JSON completion."""
    try:
        response = await client.post(
            f"{settings.OPENROUTER_BASE_URL}/chat/completions",
            headers=_headers(),
            json=_completion_body(request, stream=False),
        )
    except httpx.RequestError as e:
        logger.error(f"LLM request error: {e}")
        raise UpstreamError(f"OpenRouter request failed: {e}")

    if response.is_error:
        message = upstream_message(response)
        logger.error(f"OpenRouter API error {response.status_code}: {message}")
        raise UpstreamError(f"OpenRouter API error: {message}")
    return response.json()


async def open_stream(client: httpx.AsyncClient, request: CompletionRequest) -> httpx.Response:
    """
    Start a streaming completion and return the open upstream response.

    Errors are raised before any byte reaches the caller, so the HTTP layer
    can still answer with a JSON error. The caller must close the response.
    """
    upstream = client.build_request(
        "POST",
        f"{settings.OPENROUTER_BASE_URL}/chat/completions",
        headers=_headers(),
        json=_completion_body(request, stream=True),
    )
    try:
        response = await client.send(upstream, stream=True)
    except httpx.RequestError as e:
        logger.error(f"LLM stream error: {e}")
        raise UpstreamError(f"OpenRouter request failed: {e}")

    if response.is_error:
        await response.aread()
        await response.aclose()
        message = upstream_message(response)
        logger.error(f"OpenRouter API error {response.status_code}: {message}")
        raise UpstreamError(f"OpenRouter API error: {message}")
    return response


async def relay(response: httpx.Response, client: httpx.AsyncClient) -> AsyncIterator[bytes]:
    """Pass the upstream event stream through unchanged, then close both ends."""
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()
        await client.aclose()


async def generate_image(client: httpx.AsyncClient, request: ImageRequest) -> dict:
    try:
        response = await client.post(
            f"{settings.OPENROUTER_BASE_URL}/images/generations",
            headers=_headers(),
            json={"model": request.model, "prompt": request.prompt, "n": 1, "size": "1024x1024"},
        )
    except httpx.RequestError as e:
        logger.error(f"Image generation error: {e}")
        raise UpstreamError(f"OpenRouter request failed: {e}")

    if response.is_error:
        message = upstream_message(response)
        logger.error(f"OpenRouter image API error {response.status_code}: {message}")
        raise UpstreamError(f"OpenRouter API error: {message}")
    return response.json()
