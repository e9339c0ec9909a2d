"""Celery tasks for asynchronous processing."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.config import settings
from ..core.metrics import record_indexing_result
from ..ingest.indexer_client import post_to_indexer
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="workers.notify_indexer",
    max_retries=settings.INDEXING_MAX_RETRIES,
    default_retry_delay=settings.INDEXING_RETRY_DELAY_SECONDS,
)
def notify_indexer(self, payload: dict[str, Any]) -> str:
    """Tell the indexing service that an object is ready to be indexed.

    The outcome is recorded in logs and metrics only; nothing is written back
    to the file record.
    """

    target = f"{payload.get('namespace')}/{payload.get('object_key')}"
    if not settings.INDEXING_SERVICE_URL:
        logger.info("Indexing service not configured; skipping %s", target)
        record_indexing_result("skipped")
        return "skipped"

    try:
        post_to_indexer(payload)
    except httpx.HTTPStatusError as exc:
        logger.warning(
            "Indexing service rejected %s with status %s", target, exc.response.status_code
        )
        record_indexing_result("rejected")
        return "rejected"
    except httpx.TransportError as exc:
        if self.request.retries < self.max_retries:
            logger.info(
                "Indexing call for %s failed (%s); retry %s/%s",
                target,
                exc,
                self.request.retries + 1,
                self.max_retries,
            )
            record_indexing_result("retrying")
            raise self.retry(exc=exc)
        logger.error("Indexing call for %s failed after %s retries: %s", target, self.max_retries, exc)
        record_indexing_result("failed")
        return "failed"

    logger.info("Indexing triggered for %s", target)
    record_indexing_result("succeeded")
    return "succeeded"
