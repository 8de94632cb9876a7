"""SQLAlchemy declarative base and timestamp helpers.

This module provides the base class for all database models.
Timestamps are stamped explicitly by the factory functions that
build records, not by ORM or server-side hooks.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models.

    Provides a common foundation for model definitions with
    a generic repr.
    """

    def __repr__(self) -> str:
        """Generate string representation of the model instance.

        Returns:
            String with class name and primary key values.
        """
        pk_cols = [col.name for col in self.__table__.primary_key.columns]
        pk_values = ", ".join(f"{col}={getattr(self, col, None)}" for col in pk_cols)
        return f"<{self.__class__.__name__}({pk_values})>"
