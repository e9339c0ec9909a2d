"""Namespace identification endpoint."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from ..ingest.pipeline import IngestionService, get_ingestion_service

router = APIRouter()


class IdentifyRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, max_length=255)
    contact_number: Optional[str] = Field(default=None, max_length=64)


class IdentifyResponse(BaseModel):
    user_id: Optional[str]
    owner_key: str
    namespace: str
    normalized_number: Optional[str]


@router.post("/identify", response_model=IdentifyResponse, summary="Resolve a caller's namespace")
async def identify(
    payload: IdentifyRequest,
    service: IngestionService = Depends(get_ingestion_service),
) -> IdentifyResponse:
    """Resolve (and provision if needed) the namespace for a user or contact number."""

    owner_key, namespace, identity = await run_in_threadpool(
        service.identify, user_id=payload.user_id, contact_number=payload.contact_number
    )
    if identity is None:
        return IdentifyResponse(
            user_id=owner_key, owner_key=owner_key, namespace=namespace, normalized_number=None
        )
    return IdentifyResponse(
        user_id=identity.user_id,
        owner_key=owner_key,
        namespace=namespace,
        normalized_number=identity.normalized_number,
    )
