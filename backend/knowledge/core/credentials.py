"""Short-lived object store credentials cached behind an expiry guard."""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from minio.credentials import AssumeRoleProvider, Credentials, Provider, StaticProvider

from .config import settings
from .errors import CredentialError
from .http_pool import build_http_client

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialCache(Provider):
    """MinIO credential provider that caches upstream credentials until they near expiry.

    Readers share the cached value without locking; a refresh takes the lock and
    re-checks so concurrent callers trigger a single upstream fetch.
    """

    def __init__(
        self,
        upstream: Provider,
        *,
        refresh_margin: timedelta | None = None,
        attempts: int | None = None,
        backoff_seconds: float = 0.2,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._upstream = upstream
        self._refresh_margin = refresh_margin or timedelta(
            seconds=settings.CREDENTIAL_REFRESH_MARGIN_SECONDS
        )
        self._attempts = max(1, attempts or settings.CREDENTIAL_FETCH_ATTEMPTS)
        self._backoff_seconds = backoff_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._credentials: Credentials | None = None

    def retrieve(self) -> Credentials:
        credentials = self._credentials
        if credentials is not None and self._is_fresh(credentials):
            return credentials

        with self._lock:
            credentials = self._credentials
            if credentials is not None and self._is_fresh(credentials):
                return credentials
            credentials = self._fetch()
            self._credentials = credentials
            return credentials

    def _is_fresh(self, credentials: Credentials) -> bool:
        expiration = credentials.expiration
        if expiration is None:
            return True
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return expiration - self._refresh_margin > self._clock()

    def _fetch(self) -> Credentials:
        last_error: Exception | None = None
        for attempt in range(1, self._attempts + 1):
            try:
                credentials = self._upstream.retrieve()
            except Exception as exc:  # providers raise ValueError, urllib3 and S3 errors
                last_error = exc
                logger.warning(
                    "Credential fetch attempt %s/%s failed: %s", attempt, self._attempts, exc
                )
                if attempt < self._attempts:
                    time.sleep(self._backoff_seconds * attempt)
                continue
            logger.debug("Obtained object store credentials expiring at %s", credentials.expiration)
            return credentials
        raise CredentialError("Unable to obtain object store credentials") from last_error


def build_credential_provider() -> CredentialCache:
    """Return the configured upstream provider wrapped in an expiry-guarded cache."""

    upstream: Provider
    if settings.MINIO_STS_ENDPOINT:
        upstream = AssumeRoleProvider(
            sts_endpoint=settings.MINIO_STS_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            duration_seconds=settings.MINIO_STS_DURATION_SECONDS,
            region=settings.MINIO_REGION,
            http_client=build_http_client(),
        )
    else:
        upstream = StaticProvider(settings.MINIO_ACCESS_KEY, settings.MINIO_SECRET_KEY)
    return CredentialCache(upstream)
