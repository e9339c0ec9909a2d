"""Fire-and-forget trigger for downstream indexing."""
from __future__ import annotations

import logging
from typing import Any

from ..core.config import settings
from ..core.metrics import record_best_effort_failure, record_indexing_result
from ..workers import tasks
from .indexer_client import build_indexing_payload

logger = logging.getLogger(__name__)


class IndexingTrigger:
    """Enqueue the indexing notification for a stored object.

    Failures are logged and counted; they never reach the caller.
    """

    def __init__(self, settle_seconds: float | None = None) -> None:
        self._settle_seconds = (
            settings.INDEXING_SETTLE_SECONDS if settle_seconds is None else settle_seconds
        )

    def notify(
        self,
        *,
        user_id: str,
        namespace: str,
        object_key: str,
        file_type: str,
        size: int,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        payload = build_indexing_payload(
            user_id=user_id,
            namespace=namespace,
            object_key=object_key,
            file_type=file_type,
            size=size,
            metadata=metadata,
        )
        try:
            tasks.notify_indexer.apply_async(
                kwargs={"payload": payload}, countdown=self._settle_seconds
            )
        except Exception as exc:  # broker errors vary by transport
            logger.warning("Failed to enqueue indexing for %s/%s: %s", namespace, object_key, exc)
            record_indexing_result("enqueue_failed")
            record_best_effort_failure("indexing_trigger")
            return False
        logger.debug("Queued indexing for %s/%s", namespace, object_key)
        return True
