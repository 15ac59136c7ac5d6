# chatsync/services/uploads.py
import asyncio
import logging
import os
import re
import uuid
from typing import Optional

from fastapi import UploadFile
from pydantic import BaseModel

from chatsync.core.config import settings
from chatsync.core.errors import ValidationError
from chatsync.db.models import now_ms

logger = logging.getLogger(__name__)

UPLOAD_URL_PREFIX = "/uploads"
CHUNK_SIZE = 1024 * 1024


class UploadResult(BaseModel):
    id: str
    url: str
    filename: str
    type: str
    size: int
    uploadedAt: int


def safe_filename(filename: str) -> str:
    name = os.path.basename(filename or "").strip()
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name)
    return name or "file"


async def read_limited(file: UploadFile, limit: int) -> bytes:
    """Read at most `limit` bytes; one byte more means the file is too large."""
    chunks = []
    size = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise ValidationError(f"File too large. Max size is {limit // (1024 * 1024)}MB")
        chunks.append(chunk)
    return b"".join(chunks)


def _write_file(directory: str, name: str, data: bytes) -> None:
    os.makedirs(directory, exist_ok=True)
    with open(os.path.join(directory, name), "wb") as out:
        out.write(data)


async def store_upload(file: Optional[UploadFile]) -> UploadResult:
    """Validate an uploaded file and write it under UPLOAD_DIR."""
    if file is None or not file.filename:
        raise ValidationError("No file provided")

    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if content_type not in settings.ALLOWED_UPLOAD_TYPES:
        raise ValidationError("File type not allowed")

    data = await read_limited(file, settings.MAX_UPLOAD_BYTES)

    upload_id = f"upload_{uuid.uuid4().hex}"
    filename = safe_filename(file.filename)
    stored_name = f"{upload_id}-{filename}"

    await asyncio.to_thread(_write_file, settings.UPLOAD_DIR, stored_name, data)

    logger.info(f"✅ Stored upload {stored_name} ({len(data)} bytes)")
    return UploadResult(
        id=upload_id,
        url=f"{settings.PUBLIC_BASE_URL.rstrip('/')}{UPLOAD_URL_PREFIX}/{stored_name}",
        filename=file.filename,
        type=content_type,
        size=len(data),
        uploadedAt=now_ms(),
    )
