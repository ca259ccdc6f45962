"""Base Model Module."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all database models."""

    def __repr__(self) -> str:
        """Render the primary key columns for debugging."""
        keys = ", ".join(
            f"{column.key}={getattr(self, column.key)!r}"
            for column in self.__table__.primary_key.columns
        )
        return f"<{self.__class__.__name__}({keys})>"
