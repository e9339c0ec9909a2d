"""Binding between an owner and its storage namespace."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from . import Base

CONTACT_OWNER_PREFIX = "contact:"


class NamespaceMapping(Base):
    """One namespace per owner; never mutated once written."""

    __tablename__ = "namespace_mappings"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    owner_key = Column(String(255), nullable=False, unique=True, index=True)
    namespace = Column(String(63), nullable=False, unique=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    @property
    def is_contact_scoped(self) -> bool:
        return self.owner_key.startswith(CONTACT_OWNER_PREFIX)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"NamespaceMapping(owner_key={self.owner_key!r}, namespace={self.namespace!r})"
