"""Ingestion orchestration: resolve, store, persist, extract and trigger indexing."""
from __future__ import annotations

import hashlib
import logging
import mimetypes
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.db import SessionLocal
from ..core.errors import (
    InfrastructureError,
    InputError,
    MetadataStoreError,
    NotFoundError,
    PayloadTooLargeError,
)
from ..core.metrics import record_best_effort_failure, record_extraction, record_ingestion
from ..models import FileRecord
from ..models.file_records import ExtractionState, FileType, file_type_from_name
from .contacts import ContactIdentifier, ContactIdentity
from .extraction import ExtractionResult, extract_with_timeout, finalize_text
from .indexing import IndexingTrigger
from .namespaces import NamespaceResolver
from .storage import ObjectStoreGateway, build_object_key

logger = logging.getLogger(__name__)

ORIGIN_DIRECT_UPLOAD = "direct_upload"
ORIGIN_CHANNEL = "channel"
CHANNEL_TRANSCRIPT_METHOD = "channel_transcript"

# Schedules a callable after the response is sent; ``None`` runs it inline.
Defer = Callable[..., Any]


def compute_content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def guess_content_type(file_name: str, declared: str | None = None) -> str:
    if declared and declared.strip():
        return declared.split(";", 1)[0].strip().lower()
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or "application/octet-stream"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class IngestionService:
    """Entry point for every write and read against a user's knowledge store."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        gateway: ObjectStoreGateway,
        resolver: NamespaceResolver,
        identifier: ContactIdentifier,
        trigger: IndexingTrigger,
        *,
        compensate_orphans: bool | None = None,
        max_bytes: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._gateway = gateway
        self._resolver = resolver
        self._identifier = identifier
        self._trigger = trigger
        self._compensate_orphans = (
            settings.INGEST_COMPENSATE_ORPHANS if compensate_orphans is None else compensate_orphans
        )
        self._max_bytes = settings.UPLOAD_MAX_BYTES if max_bytes is None else max_bytes

    @property
    def gateway(self) -> ObjectStoreGateway:
        return self._gateway

    def ingest(
        self,
        user_id: str,
        file_name: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        origin: str = ORIGIN_DIRECT_UPLOAD,
        namespace: str | None = None,
        defer: Defer | None = None,
    ) -> FileRecord:
        """Store ``data`` for ``user_id`` and return the persisted file record.

        Steps run in a fixed order: namespace resolution, hashing, object
        write, record insert, extraction and finally the indexing trigger.
        Failures before the insert leave no record behind. Extraction and
        trigger problems never reach the caller.
        """

        owner = (user_id or "").strip()
        name = (file_name or "").strip()
        if not owner:
            raise InputError("User identifier is required")
        if not name:
            raise InputError("File name is required")
        if data is None:
            raise InputError("File content is required")
        if len(data) > self._max_bytes:
            raise PayloadTooLargeError(
                f"File exceeds the maximum upload size of {self._max_bytes} bytes"
            )
        if metadata is not None and not isinstance(metadata, dict):
            raise InputError("Metadata must be an object")

        try:
            target_namespace = namespace or self._resolver.resolve(owner)
        except InfrastructureError:
            record_ingestion("resolve", "failed")
            raise

        content_hash = compute_content_hash(data)
        resolved_type = guess_content_type(name, content_type)
        object_key = build_object_key(name)

        try:
            self._gateway.put(target_namespace, object_key, data, resolved_type)
        except InfrastructureError:
            record_ingestion("store", "failed")
            raise

        record_metadata = dict(metadata or {})
        record_metadata.setdefault("origin", origin)
        record_metadata["uploaded_at"] = _utcnow_iso()
        record_metadata["original_filename"] = name

        record = FileRecord(
            id=uuid.uuid4(),
            user_id=owner,
            name=name,
            size=len(data),
            file_type=file_type_from_name(name).value,
            content_type=resolved_type,
            namespace=target_namespace,
            object_key=object_key,
            content_hash=content_hash,
            extraction_state=ExtractionState.PENDING.value,
            file_metadata=record_metadata,
        )
        self._insert_record(record)

        result = extract_with_timeout(name, data, content_type=resolved_type)
        self._store_extraction(record, result)
        record_ingestion("complete", "succeeded")

        self._schedule_indexing(
            defer,
            user_id=owner,
            namespace=target_namespace,
            object_key=object_key,
            file_type=record.file_type,
            size=record.size,
            metadata=record.file_metadata,
        )
        logger.info(
            "Ingested %s for %s into %s/%s (%s bytes, method=%s)",
            name,
            owner,
            target_namespace,
            object_key,
            record.size,
            record.extraction_method,
        )
        return record

    def list_files(self, user_id: str) -> list[FileRecord]:
        owner = (user_id or "").strip()
        if not owner:
            raise InputError("User identifier is required")
        try:
            with self._session_factory() as session:
                records = session.execute(
                    select(FileRecord)
                    .where(FileRecord.user_id == owner)
                    .order_by(FileRecord.created_at.desc(), FileRecord.id.desc())
                ).scalars().all()
        except SQLAlchemyError as exc:
            logger.error("Failed to list files for %s: %s", owner, exc)
            raise MetadataStoreError("File listing failed") from exc
        return list(records)

    def delete_file(self, user_id: str, file_id: uuid.UUID) -> None:
        """Delete the backing object (best-effort) and then the record itself."""

        owner = (user_id or "").strip()
        if not owner:
            raise InputError("User identifier is required")
        try:
            with self._session_factory() as session:
                record = session.get(FileRecord, file_id)
                if record is None or record.user_id != owner:
                    raise NotFoundError("File not found")

                try:
                    self._gateway.delete(record.namespace, record.object_key)
                except (InfrastructureError, NotFoundError) as exc:
                    record_best_effort_failure("object_delete")
                    logger.warning(
                        "Could not delete object %s for file %s; removing record anyway: %s",
                        record.storage_uri,
                        record.id,
                        exc,
                    )

                session.delete(record)
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to delete file %s for %s: %s", file_id, owner, exc)
            raise MetadataStoreError("File delete failed") from exc
        logger.info("Deleted file %s for %s", file_id, owner)

    def identify(
        self, *, user_id: str | None = None, contact_number: str | None = None
    ) -> tuple[str, str, ContactIdentity | None]:
        """Return ``(owner_key, namespace, contact identity)`` for a caller."""

        owner = (user_id or "").strip()
        if owner:
            return owner, self._resolver.resolve(owner), None
        if not (contact_number or "").strip():
            raise InputError("Either user_id or contact_number is required")

        identity = self._identifier.identify(contact_number or "")
        if identity.user_id:
            return identity.user_id, self._resolver.resolve(identity.user_id), identity
        return (
            identity.owner_key,
            self._resolver.resolve_contact(identity.normalized_number),
            identity,
        )

    def ingest_channel_content(
        self,
        *,
        user_id: str | None = None,
        contact_number: str | None = None,
        file_type: str = FileType.FILE.value,
        content: str | None = None,
        file_name: str | None = None,
        namespace: str | None = None,
        object_key: str | None = None,
        metadata: dict[str, Any] | None = None,
        defer: Defer | None = None,
    ) -> FileRecord | None:
        """Ingest text or register an already-stored object from a messaging channel.

        Text is written as a markdown document through :meth:`ingest`. An
        object reference creates no new record: the object is checked to
        exist and a single indexing trigger fires for it. When a record
        already tracks the object and text is supplied, that text replaces
        the record's extraction fields.
        """

        if metadata is not None and not isinstance(metadata, dict):
            raise InputError("Metadata must be an object")
        has_text = content is not None and content.strip() != ""
        has_reference = bool(object_key)
        if not has_text and not has_reference:
            raise InputError("Either content or an object reference is required")

        owner, owner_namespace, identity = self.identify(
            user_id=user_id, contact_number=contact_number
        )
        channel_metadata = dict(metadata or {})
        channel_metadata.setdefault("origin", ORIGIN_CHANNEL)
        if identity is not None:
            channel_metadata.setdefault("contact_number", identity.normalized_number)

        if not has_reference:
            name = file_name or f"channel-{datetime.now(timezone.utc):%Y%m%d-%H%M%S}.md"
            if not name.lower().endswith((".md", ".markdown", ".txt")):
                name = f"{name}.md"
            return self.ingest(
                owner,
                name,
                (content or "").encode("utf-8"),
                content_type="text/markdown",
                metadata=channel_metadata,
                origin=ORIGIN_CHANNEL,
                namespace=owner_namespace,
                defer=defer,
            )

        if namespace and namespace != owner_namespace:
            raise InputError("Object reference does not belong to the caller's namespace")
        size = self._gateway.stat(owner_namespace, object_key or "")

        record = self._find_by_object(owner_namespace, object_key or "")
        if record is not None and has_text:
            result = finalize_text(record.name, content or "", CHANNEL_TRANSCRIPT_METHOD)
            self._store_extraction(record, result, transcribed_from=file_type)
        elif has_text:
            logger.warning(
                "No file record tracks %s/%s; discarding supplied %s text",
                owner_namespace,
                object_key,
                file_type,
            )

        self._schedule_indexing(
            defer,
            user_id=owner,
            namespace=owner_namespace,
            object_key=object_key or "",
            file_type=file_type,
            size=size,
            metadata=channel_metadata,
        )
        record_ingestion("channel_reference", "succeeded")
        logger.info(
            "Registered channel %s object %s/%s for %s", file_type, owner_namespace, object_key, owner
        )
        return record

    def _insert_record(self, record: FileRecord) -> None:
        try:
            with self._session_factory() as session:
                session.add(record)
                session.commit()
        except SQLAlchemyError as exc:
            record_ingestion("persist", "failed")
            logger.error(
                "Failed to insert file record for %s; object %s is orphaned: %s",
                record.user_id,
                record.storage_uri,
                exc,
            )
            if self._compensate_orphans:
                self._remove_orphan(record)
            raise MetadataStoreError("File record insert failed") from exc

    def _remove_orphan(self, record: FileRecord) -> None:
        try:
            self._gateway.delete(record.namespace, record.object_key)
            logger.info("Removed orphaned object %s", record.storage_uri)
        except (InfrastructureError, NotFoundError) as exc:
            record_best_effort_failure("orphan_cleanup")
            logger.warning("Could not remove orphaned object %s: %s", record.storage_uri, exc)

    def _store_extraction(self, record: FileRecord, result: ExtractionResult, **extra: Any) -> None:
        record.apply_extraction(result, **extra)
        record_extraction(result.method)
        try:
            with self._session_factory() as session:
                session.merge(record)
                session.commit()
        except SQLAlchemyError as exc:
            record_best_effort_failure("extraction_update")
            logger.error("Failed to store extraction result for file %s: %s", record.id, exc)

    def _find_by_object(self, namespace: str, object_key: str) -> FileRecord | None:
        try:
            with self._session_factory() as session:
                return session.execute(
                    select(FileRecord).where(
                        FileRecord.namespace == namespace, FileRecord.object_key == object_key
                    )
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise MetadataStoreError("File lookup failed") from exc

    def _schedule_indexing(self, defer: Defer | None, **kwargs: Any) -> None:
        try:
            if defer is None:
                self._trigger.notify(**kwargs)
            else:
                defer(self._trigger.notify, **kwargs)
        except Exception as exc:  # the trigger must never fail an ingestion
            record_best_effort_failure("indexing_schedule")
            logger.warning("Could not schedule indexing for %s: %s", kwargs.get("object_key"), exc)


@lru_cache(maxsize=1)
def get_ingestion_service() -> IngestionService:
    """Return the process-wide ingestion service wired to the configured backends."""

    gateway = ObjectStoreGateway()
    return IngestionService(
        SessionLocal,
        gateway,
        NamespaceResolver(SessionLocal, gateway),
        ContactIdentifier(SessionLocal),
        IndexingTrigger(),
    )
