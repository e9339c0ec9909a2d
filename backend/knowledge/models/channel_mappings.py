"""Messaging channel identifiers resolved to users."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from . import Base


class ChannelUserMapping(Base):
    """Explicit mapping from a normalized contact number to a user."""

    __tablename__ = "channel_user_mappings"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    channel_identifier = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    is_verified = Column(Boolean, nullable=False, default=False, server_default="false")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )
