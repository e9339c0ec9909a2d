"""Celery application configuration."""
from __future__ import annotations

from celery import Celery
from celery.signals import setup_logging

from ..core.config import settings
from ..core.logging_config import configure_logging

celery_app = Celery(
    "knowledge_ingest",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["backend.knowledge.workers.tasks"],
)

celery_app.conf.update(
    task_default_queue="default",
    task_acks_late=True,
    task_ignore_result=True,
)


@setup_logging.connect
def _configure_worker_logging(**_: object) -> None:
    configure_logging()
