"""Endpoints for content forwarded from messaging channels."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from ..core.config import settings
from ..core.rate_limiter import limiter
from ..ingest.pipeline import IngestionService, get_ingestion_service
from .routes_files import FileRecordResponse, to_file_response

logger = logging.getLogger(__name__)
router = APIRouter()


class ChannelContentRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, max_length=255)
    contact_number: Optional[str] = Field(default=None, max_length=64)
    file_type: str = Field(default="file", max_length=16)
    content: Optional[str] = None
    file_name: Optional[str] = Field(default=None, max_length=512)
    namespace: Optional[str] = Field(default=None, max_length=63)
    object_key: Optional[str] = Field(default=None, max_length=1024)
    metadata: Optional[dict[str, Any]] = None


class ChannelContentResponse(BaseModel):
    success: bool
    file: Optional[FileRecordResponse] = None


@router.post("/content", response_model=ChannelContentResponse, summary="Ingest channel content")
@limiter.limit(settings.RATE_LIMIT_INGESTION)
async def ingest_channel_content(
    payload: ChannelContentRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: IngestionService = Depends(get_ingestion_service),
) -> ChannelContentResponse:
    """Store forwarded text, or register an object the channel already uploaded."""

    record = await run_in_threadpool(
        service.ingest_channel_content,
        user_id=payload.user_id,
        contact_number=payload.contact_number,
        file_type=payload.file_type,
        content=payload.content,
        file_name=payload.file_name,
        namespace=payload.namespace,
        object_key=payload.object_key,
        metadata=payload.metadata,
        defer=background_tasks.add_task,
    )
    return ChannelContentResponse(
        success=True, file=to_file_response(record) if record is not None else None
    )
