"""HTTP client for the downstream semantic-indexing service."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)


def build_indexing_payload(
    *,
    user_id: str,
    namespace: str,
    object_key: str,
    file_type: str,
    size: int,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "namespace": namespace,
        "object_key": object_key,
        "file_type": file_type,
        "size": size,
        "metadata": dict(metadata or {}),
    }


def post_to_indexer(payload: dict[str, Any], *, client: httpx.Client | None = None) -> int:
    """POST the payload to the indexing service and return the response status code.

    Raises ``httpx.TransportError`` for connection problems and
    ``httpx.HTTPStatusError`` when the service answers with an error status.
    """

    url = settings.INDEXING_SERVICE_URL
    if not url:
        raise RuntimeError("INDEXING_SERVICE_URL is not configured")

    headers = {"Content-Type": "application/json"}
    if settings.INDEXING_SERVICE_TOKEN:
        headers["Authorization"] = f"Bearer {settings.INDEXING_SERVICE_TOKEN}"

    owns_client = client is None
    http = client or httpx.Client(timeout=settings.INDEXING_TIMEOUT)
    try:
        response = http.post(url, json=payload, headers=headers)
        response.raise_for_status()
    finally:
        if owns_client:
            http.close()

    logger.debug(
        "Indexing service accepted %s/%s with status %s",
        payload.get("namespace"),
        payload.get("object_key"),
        response.status_code,
    )
    return response.status_code
