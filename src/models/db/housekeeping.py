"""Housekeeping Model Module."""

from sqlalchemy.orm import Mapped, Session, mapped_column
from sqlalchemy.sql.sqltypes import String

from src.models.db.base import Base

__all__ = ["Housekeeping"]


class Housekeeping(Base):
    """Small key/value table for persisted flags such as the auto-run opt-in."""

    __tablename__ = "house_keeping"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str | None] = mapped_column(String, nullable=True)

    @classmethod
    def read(cls, session: Session, key: str) -> str | None:
        """Return the stored value for ``key`` or None when it was never set."""
        row = session.get(cls, key)
        return row.value if row is not None else None

    @classmethod
    def write(cls, session: Session, key: str, value: str | None) -> None:
        """Insert or replace ``key`` and commit."""
        session.merge(cls(key=key, value=value))
        session.commit()
