"""Read model of the externally managed user profile table."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, String, func

from . import Base


class UserProfile(Base):
    """Profile fields used to identify messaging contacts."""

    __tablename__ = "user_profiles"

    user_id = Column(String(255), primary_key=True)
    display_name = Column(String(255), nullable=True)
    whatsapp_number = Column(String(64), nullable=True, index=True)
    phone_number = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"UserProfile(user_id={self.user_id!r})"
