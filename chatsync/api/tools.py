from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel
from typing import Optional
import httpx
import logging

from chatsync.core.http import get_http_client
from chatsync.services import uploads, web_search

logger = logging.getLogger(__name__)
router = APIRouter()


class SearchRequest(BaseModel):
    query: Optional[str] = None


@router.post("/search", response_model=web_search.WebSearchResponse)
async def search(
    request: SearchRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Web search through the first configured provider"""
    return await web_search.search_web(request.query, client)


@router.post("/upload", response_model=uploads.UploadResult)
async def upload(file: Optional[UploadFile] = File(None)):
    """Accept one file (multipart field `file`)"""
    return await uploads.store_upload(file)
