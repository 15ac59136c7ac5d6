from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from typing import Callable
import httpx
import logging

from chatsync.core.http import get_client_factory, get_http_client
from chatsync.services import openrouter
from chatsync.services.model_registry import list_models
from chatsync.services.openrouter import CompletionRequest, ImageRequest

logger = logging.getLogger(__name__)
router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _stream_completion(request: CompletionRequest, factory: Callable[[], httpx.AsyncClient]):
    # The client must outlive this handler, so it is closed by the relay
    client = factory()
    try:
        upstream = await openrouter.open_stream(client, request)
    except Exception:
        await client.aclose()
        raise
    return StreamingResponse(
        openrouter.relay(upstream, client),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/llm")
async def llm(
    request: CompletionRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    factory: Callable[[], httpx.AsyncClient] = Depends(get_client_factory),
):
    """Forward a chat completion; `stream: true` relays the event stream"""
    if request.stream:
        return await _stream_completion(request, factory)
    return await openrouter.complete(client, request)


@router.post("/llm/stream")
async def llm_stream(
    request: CompletionRequest,
    factory: Callable[[], httpx.AsyncClient] = Depends(get_client_factory),
):
    return await _stream_completion(request, factory)


@router.post("/image/generate")
async def generate_image(
    request: ImageRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
):
    return await openrouter.generate_image(client, request)


@router.get("/models")
def models():
    return {"models": list_models("chat")}


@router.get("/models/image")
def image_models():
    return {"models": list_models("image")}
