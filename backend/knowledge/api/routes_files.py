"""File ingestion and management endpoints."""
from __future__ import annotations

import base64
import binascii
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from ..core.config import settings
from ..core.errors import InputError, PayloadTooLargeError
from ..core.rate_limiter import limiter
from ..ingest.pipeline import IngestionService, get_ingestion_service
from ..models import FileRecord
from ..models.file_records import file_type_from_name

logger = logging.getLogger(__name__)
router = APIRouter()


class FilePayload(BaseModel):
    name: str = Field(..., max_length=512)
    content: str
    type: Optional[str] = Field(default=None, max_length=255)


class FileIngestRequest(BaseModel):
    user_id: str = Field(..., max_length=255)
    file: Optional[FilePayload] = None
    metadata: Optional[dict[str, Any]] = None


class FileRecordResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    name: str
    size: int
    type: str
    content_type: str
    namespace: str
    object_key: str
    content_hash: str
    extraction_state: str
    extraction_method: Optional[str]
    extracted_text: Optional[str]
    metadata: Optional[dict[str, Any]]
    created_at: datetime
    updated_at: Optional[datetime]


class FileListResponse(BaseModel):
    files: list[FileRecordResponse]


def decode_base64_content(content: str) -> bytes:
    """Decode base64 file content, accepting an optional ``data:`` URL prefix."""

    encoded = content.strip()
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InputError("File content is not valid base64") from exc


def parse_metadata_field(raw: str | None) -> dict[str, Any] | None:
    if raw is None or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InputError("Metadata is not valid JSON") from exc
    if not isinstance(value, dict):
        raise InputError("Metadata must be a JSON object")
    return value


def to_file_response(record: FileRecord, *, derive_type: bool = False) -> FileRecordResponse:
    file_type = file_type_from_name(record.name).value if derive_type else record.file_type
    return FileRecordResponse(
        id=record.id,
        user_id=record.user_id,
        name=record.name,
        size=record.size,
        type=file_type,
        content_type=record.content_type,
        namespace=record.namespace,
        object_key=record.object_key,
        content_hash=record.content_hash,
        extraction_state=record.extraction_state,
        extraction_method=record.extraction_method,
        extracted_text=record.extracted_text,
        metadata=record.file_metadata,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.post("", response_model=FileRecordResponse, summary="Ingest a base64-encoded file")
@limiter.limit(settings.RATE_LIMIT_INGESTION)
async def ingest_file(
    payload: FileIngestRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: IngestionService = Depends(get_ingestion_service),
) -> FileRecordResponse:
    """Store the file, extract its text and schedule indexing after the response."""

    if payload.file is None:
        raise InputError("A file is required")
    # Base64 inflates by 4/3; reject before decoding anything obviously oversized.
    if len(payload.file.content) > (settings.UPLOAD_MAX_BYTES * 4) // 3 + 4:
        raise PayloadTooLargeError("File exceeds the maximum upload size")
    data = decode_base64_content(payload.file.content)

    record = await run_in_threadpool(
        service.ingest,
        payload.user_id,
        payload.file.name,
        data,
        content_type=payload.file.type,
        metadata=payload.metadata,
        defer=background_tasks.add_task,
    )
    return to_file_response(record)


@router.post("/upload", response_model=FileRecordResponse, summary="Ingest a multipart upload")
@limiter.limit(settings.RATE_LIMIT_INGESTION)
async def upload_file(
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: str = Form(...),
    file: Optional[UploadFile] = File(default=None),
    metadata: Optional[str] = Form(default=None),
    service: IngestionService = Depends(get_ingestion_service),
) -> FileRecordResponse:
    """Multipart variant of :func:`ingest_file`."""

    if file is None or not file.filename:
        raise InputError("A file is required")
    parsed_metadata = parse_metadata_field(metadata)
    data = await file.read(settings.UPLOAD_MAX_BYTES + 1)
    if len(data) > settings.UPLOAD_MAX_BYTES:
        raise PayloadTooLargeError("File exceeds the maximum upload size")

    record = await run_in_threadpool(
        service.ingest,
        user_id,
        file.filename,
        data,
        content_type=file.content_type,
        metadata=parsed_metadata,
        defer=background_tasks.add_task,
    )
    return to_file_response(record)


@router.get("", response_model=FileListResponse, summary="List a user's files")
async def list_files(
    user_id: str = Query(..., min_length=1),
    service: IngestionService = Depends(get_ingestion_service),
) -> FileListResponse:
    """Return the user's files, newest first."""

    records = await run_in_threadpool(service.list_files, user_id)
    return FileListResponse(files=[to_file_response(record, derive_type=True) for record in records])


@router.delete("/{file_id}", summary="Delete a file and its stored object")
async def delete_file(
    file_id: uuid.UUID,
    user_id: str = Query(..., min_length=1),
    service: IngestionService = Depends(get_ingestion_service),
) -> dict[str, bool]:
    await run_in_threadpool(service.delete_file, user_id, file_id)
    return {"success": True}
