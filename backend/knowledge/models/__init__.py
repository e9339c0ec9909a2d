"""SQLAlchemy declarative base for the application models."""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Import models so that Alembic discovers the tables via Base.metadata.
# The imports are intentionally placed at the end of the module to avoid
# circular import issues when the individual model modules import ``Base``.
from .channel_mappings import ChannelUserMapping  # noqa: F401  (re-export for convenience)
from .file_records import FileRecord  # noqa: F401
from .namespace_mappings import NamespaceMapping  # noqa: F401
from .profiles import UserProfile  # noqa: F401


__all__ = [
    "Base",
    "ChannelUserMapping",
    "FileRecord",
    "NamespaceMapping",
    "UserProfile",
]
