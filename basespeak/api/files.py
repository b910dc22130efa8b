"""
File serving for local storage mode.

GET /v1/files/{bucket}/{path} — Serve a stored asset (base media, segment audio, clips)

Lip-sync vendors fetch segment audio from here, so no identity is required.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from ..core.config import get_settings
from ..core.dependencies import get_storage_dep
from ..core.storage import LocalStorage, StorageBackend

logger = logging.getLogger(__name__)

files_router = APIRouter(tags=["files"])


@files_router.get("/files/{bucket}/{path:path}")
async def serve_file(
    bucket: str,
    path: str,
    storage: StorageBackend = Depends(get_storage_dep),
):
    """Serve a locally stored file."""
    if not isinstance(storage, LocalStorage):
        raise HTTPException(status_code=404, detail="Direct file serving only in local mode")

    settings = get_settings()
    if bucket not in (settings.base_bucket, settings.video_bucket):
        raise HTTPException(status_code=404, detail="File not found")

    found = await storage.read_file(bucket, path)
    if found is None:
        raise HTTPException(status_code=404, detail="File not found")

    data, content_type = found
    return Response(content=data, media_type=content_type)
