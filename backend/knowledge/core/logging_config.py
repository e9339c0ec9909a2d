"""Root logger configuration for the API and the Celery workers."""
from __future__ import annotations

import logging
import sys

from .config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"

_NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "pdfminer", "multipart")


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once at process startup."""

    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT, stream=sys.stdout)
    logging.getLogger().setLevel(resolved)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
