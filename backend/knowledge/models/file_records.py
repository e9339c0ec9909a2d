"""File metadata stored in the relational database."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import BigInteger, Column, DateTime, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID

from . import Base

if TYPE_CHECKING:
    from ..ingest.extraction import ExtractionResult


class ExtractionState(str, enum.Enum):
    """Lifecycle states for the text extraction of a file."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FileType(str, enum.Enum):
    """Logical type of an ingested item."""

    FILE = "file"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    LINK = "link"


IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "svg"})
VIDEO_EXTENSIONS = frozenset({"mp4", "avi", "mov", "webm", "mkv"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "ogg", "m4a", "flac", "aac", "opus"})


def file_type_from_name(filename: str | None) -> FileType:
    """Derive the logical type from a file name extension."""

    name = (filename or "").strip().lower()
    if "." not in name:
        return FileType.FILE
    extension = name.rsplit(".", 1)[-1]
    if extension in IMAGE_EXTENSIONS:
        return FileType.IMAGE
    if extension in VIDEO_EXTENSIONS:
        return FileType.VIDEO
    if extension in AUDIO_EXTENSIONS:
        return FileType.AUDIO
    return FileType.FILE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileRecord(Base):
    """One ingested document owned by a user."""

    __tablename__ = "file_records"
    __table_args__ = (
        UniqueConstraint("namespace", "object_key", name="uq_file_records_namespace_object_key"),
    )

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(512), nullable=False)
    size = Column(BigInteger, nullable=False, default=0)
    file_type = Column(String(16), nullable=False, default=FileType.FILE.value)
    content_type = Column(String(255), nullable=False, default="application/octet-stream")
    namespace = Column(String(63), nullable=False, index=True)
    object_key = Column(String(1024), nullable=False)
    content_hash = Column(String(64), nullable=False, index=True)
    extraction_state = Column(
        String(16),
        nullable=False,
        default=ExtractionState.PENDING.value,
        server_default=ExtractionState.PENDING.value,
    )
    extracted_text = Column(Text, nullable=True)
    extraction_method = Column(String(64), nullable=True)
    file_metadata = Column("metadata", JSONB, nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"FileRecord(id={self.id!s}, user_id={self.user_id!r}, name={self.name!r})"

    @property
    def storage_uri(self) -> str:
        return f"s3://{self.namespace}/{self.object_key}"

    def apply_extraction(self, result: "ExtractionResult", **extra: Any) -> None:
        """Overwrite the extraction fields with the outcome of one extraction run."""

        self.extracted_text = result.text
        self.extraction_method = result.method
        self.extraction_state = (
            ExtractionState.SUCCEEDED.value if result.ok else ExtractionState.FAILED.value
        )
        metadata = dict(self.file_metadata or {})
        metadata.update(extra)
        metadata["content_extracted"] = result.ok
        metadata["extracted_at"] = _utcnow().isoformat()
        self.file_metadata = metadata
        self.updated_at = _utcnow()
