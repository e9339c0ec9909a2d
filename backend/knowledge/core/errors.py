"""Exception hierarchy shared by the ingestion pipeline and the HTTP layer."""
from __future__ import annotations


class IngestionError(Exception):
    """Base class for errors surfaced to callers of the public entry points."""

    status_code: int = 500
    retryable: bool = False


class InputError(IngestionError):
    """Raised before any I/O when the request itself is invalid."""

    status_code = 400


class PayloadTooLargeError(InputError):
    """Raised when an upload exceeds the configured size limit."""

    status_code = 413


class NotFoundError(IngestionError):
    """Raised when a referenced record or object does not exist."""

    status_code = 404


class InfrastructureError(IngestionError):
    """A remote dependency failed; callers may retry the request."""

    status_code = 503
    retryable = True


class CredentialError(InfrastructureError):
    """Short-lived object store credentials could not be obtained."""


class StorageUnavailableError(InfrastructureError):
    """The object store rejected or failed to answer a request."""


class ObjectNotFoundError(NotFoundError):
    """The object store has no object under the requested key."""


class MetadataStoreError(InfrastructureError):
    """The relational metadata store failed to read or write."""
