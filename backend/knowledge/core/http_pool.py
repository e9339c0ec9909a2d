"""Shared urllib3 pool for object store and credential traffic."""
from __future__ import annotations

import urllib3

from .config import settings


def build_http_client() -> urllib3.PoolManager:
    """Return a pool with bounded connect/read timeouts and transient retries."""
    return urllib3.PoolManager(
        timeout=urllib3.Timeout(
            connect=settings.STORAGE_CONNECT_TIMEOUT,
            read=settings.STORAGE_READ_TIMEOUT,
        ),
        maxsize=16,
        retries=urllib3.Retry(
            total=settings.STORAGE_MAX_RETRIES,
            backoff_factor=0.2,
            status_forcelist=(500, 502, 503, 504),
        ),
    )
