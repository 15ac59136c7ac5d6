from typing import Callable

import httpx
from fastapi import Depends

from chatsync.core.config import settings


def build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.LLM_TIMEOUT)


def get_client_factory() -> Callable[[], httpx.AsyncClient]:
    """FastAPI dependency; tests swap in a factory backed by a mock transport."""
    return build_client


async def get_http_client(factory: Callable[[], httpx.AsyncClient] = Depends(get_client_factory)):
    """One outbound client per request, closed with the request."""
    async with factory() as client:
        yield client


def upstream_message(response: httpx.Response) -> str:
    """Best-effort error text from an upstream response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("message") or str(error)
        if error:
            return str(error)
    return response.text or response.reason_phrase
