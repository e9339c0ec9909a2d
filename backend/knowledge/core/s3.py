"""MinIO client helpers for storing documents."""
from __future__ import annotations

from minio import Minio

from .config import settings
from .credentials import CredentialCache, build_credential_provider
from .http_pool import build_http_client


def get_minio_client(credentials: CredentialCache | None = None) -> Minio:
    """Return a configured MinIO client."""
    return Minio(
        settings.MINIO_ENDPOINT,
        credentials=credentials or build_credential_provider(),
        secure=settings.MINIO_SECURE,
        region=settings.MINIO_REGION,
        http_client=build_http_client(),
    )
