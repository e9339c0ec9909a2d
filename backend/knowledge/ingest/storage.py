"""Object store gateway over per-user MinIO buckets."""
from __future__ import annotations

import io
import logging
import re
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

import urllib3
from minio import Minio
from minio.error import MinioException, S3Error

from ..core.config import settings
from ..core.errors import (
    CredentialError,
    InputError,
    ObjectNotFoundError,
    StorageUnavailableError,
)
from ..core.s3 import get_minio_client

logger = logging.getLogger(__name__)

FILENAME_CLEANER = re.compile(r"[^A-Za-z0-9.-]+")
ALREADY_EXISTS_CODES = frozenset({"BucketAlreadyOwnedByYou", "BucketAlreadyExists"})
NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchObject", "NoSuchBucket", "ResourceNotFound"})

T = TypeVar("T")


def sanitize_filename(filename: str) -> str:
    """Replace every character outside ``[A-Za-z0-9.-]`` with an underscore."""

    cleaned = FILENAME_CLEANER.sub("_", filename.strip())
    return cleaned.strip("._") or "document"


def build_object_key(filename: str, *, now: datetime | None = None) -> str:
    """Return ``<prefix>/<date>/<epoch-ms>_<random>_<name>`` for a new upload."""

    moment = now or datetime.now(timezone.utc)
    date = moment.strftime("%Y-%m-%d")
    stamp = int(moment.timestamp() * 1000)
    suffix = secrets.token_hex(4)
    return f"{settings.OBJECT_KEY_PREFIX}/{date}/{stamp}_{suffix}_{sanitize_filename(filename)}"


class ObjectStoreGateway:
    """Authenticated put/get/delete of binary objects inside namespaces.

    Every namespace is a bucket. Credentials are resolved by the client's
    credential provider on each call; timeouts and transient retries are
    configured on the client's HTTP pool.
    """

    def __init__(
        self,
        client: Minio | None = None,
        *,
        client_factory: Callable[[], Minio] = get_minio_client,
        region: str | None = None,
    ) -> None:
        self._client = client
        self._client_factory = client_factory
        self._region = region if region is not None else settings.MINIO_REGION

    @property
    def client(self) -> Minio:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def namespace_exists(self, namespace: str) -> bool:
        return self._call("bucket_exists", namespace, None, self.client.bucket_exists, namespace)

    def create_namespace(self, namespace: str) -> bool:
        """Create the bucket; return ``False`` when it already exists."""

        try:
            if self._region:
                self.client.make_bucket(namespace, location=self._region)
            else:
                self.client.make_bucket(namespace)
        except S3Error as exc:
            if getattr(exc, "code", None) in ALREADY_EXISTS_CODES:
                logger.info("Namespace %s already exists; treating as provisioned", namespace)
                return False
            raise self._translate("make_bucket", namespace, None, exc) from exc
        except (MinioException, urllib3.exceptions.HTTPError, OSError) as exc:
            raise self._translate("make_bucket", namespace, None, exc) from exc
        except ValueError as exc:
            raise self._reject("make_bucket", namespace, None, exc) from exc
        logger.info("Created namespace %s", namespace)
        return True

    def put(self, namespace: str, object_key: str, data: bytes, content_type: str) -> None:
        self._call(
            "put_object",
            namespace,
            object_key,
            self.client.put_object,
            namespace,
            object_key,
            io.BytesIO(data),
            len(data),
            content_type=content_type or "application/octet-stream",
        )

    def get(self, namespace: str, object_key: str) -> bytes:
        response = self._call(
            "get_object", namespace, object_key, self.client.get_object, namespace, object_key
        )
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def stat(self, namespace: str, object_key: str) -> int:
        """Return the size in bytes of a stored object."""

        stat = self._call(
            "stat_object", namespace, object_key, self.client.stat_object, namespace, object_key
        )
        return int(getattr(stat, "size", 0) or 0)

    def delete(self, namespace: str, object_key: str) -> None:
        self._call(
            "remove_object",
            namespace,
            object_key,
            self.client.remove_object,
            namespace,
            object_key,
        )

    def _call(
        self,
        operation: str,
        namespace: str,
        object_key: str | None,
        func: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except CredentialError:
            raise
        except (MinioException, urllib3.exceptions.HTTPError, OSError) as exc:
            raise self._translate(operation, namespace, object_key, exc) from exc
        except ValueError as exc:
            raise self._reject(operation, namespace, object_key, exc) from exc
        logger.debug(
            "%s %s/%s completed in %.3fs",
            operation,
            namespace,
            object_key or "",
            time.perf_counter() - started,
        )
        return result

    @staticmethod
    def _reject(
        operation: str, namespace: str, object_key: str | None, exc: ValueError
    ) -> InputError:
        # minio validates bucket and object names client side
        logger.info(
            "Object store %s rejected %s/%s: %s", operation, namespace, object_key or "", exc
        )
        return InputError(f"Invalid object store name: {exc}")

    @staticmethod
    def _translate(
        operation: str, namespace: str, object_key: str | None, exc: Exception
    ) -> Exception:
        code = getattr(exc, "code", None) if isinstance(exc, S3Error) else None
        if code in NOT_FOUND_CODES:
            return ObjectNotFoundError(f"Object {namespace}/{object_key or ''} not found")
        logger.warning(
            "Object store %s failed for %s/%s: %s", operation, namespace, object_key or "", exc
        )
        return StorageUnavailableError(f"Object store {operation} failed")
