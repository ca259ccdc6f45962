"""SQLite storage for CollectionMarker's cache and run history."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from types import TracebackType

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src import __file__ as src_file
from src import config
from src.exceptions import DataPathError

__all__ = ["CollectionMarkerDB", "alembic_config", "db", "get_db"]

DB_FILENAME = "collectionmarker.db"

_SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA temp_store=MEMORY;",
)


def alembic_config(db_path: Path) -> Config:
    """Build an Alembic config pointing the bundled migrations at ``db_path``."""
    cfg = Config()
    cfg.set_main_option(
        "script_location", str(Path(src_file).resolve().parent.parent / "alembic")
    )
    cfg.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return cfg


def _apply_pragmas(dbapi_connection, _connection_record) -> None:
    cur = dbapi_connection.cursor()
    try:
        for pragma in _SQLITE_PRAGMAS:
            cur.execute(pragma)
    finally:
        cur.close()


class CollectionMarkerDB:
    """Owns the SQLite engine in the data directory.

    The schema is brought to the latest migration when the manager is created.
    Entering the manager as a context opens a session that is closed on exit.
    """

    def __init__(self, data_path: Path) -> None:
        """Open the database in data_path and migrate it to the latest schema.

        Args:
            data_path (Path): Directory holding the database file, created if
                missing.

        Raises:
            DataPathError: If data_path exists but is a file.
        """
        self.data_path = data_path
        self.db_path = data_path / DB_FILENAME

        self._ensure_data_dir()
        self.engine = self._create_engine()
        self._SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
        self._session: Session | None = None

        command.upgrade(alembic_config(self.db_path), "head")

    def _ensure_data_dir(self) -> None:
        if self.data_path.is_file():
            raise DataPathError(
                f"The path '{self.data_path}' is a file, please delete it first "
                "or choose a different data folder path"
            )
        self.data_path.mkdir(parents=True, exist_ok=True)

    def _create_engine(self) -> Engine:
        import src.models  # noqa: F401

        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
            future=True,
        )
        event.listen(engine, "connect", _apply_pragmas)
        return engine

    def __enter__(self) -> CollectionMarkerDB:
        self._session = self._SessionLocal()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    @property
    def session(self) -> Session:
        """The open session, created on first access."""
        if self._session is None:
            self._session = self._SessionLocal()
        return self._session

    def dispose(self) -> None:
        """Close the open session and release pooled connections."""
        self.__exit__(None, None, None)
        self.engine.dispose()


@lru_cache(maxsize=1)
def get_db() -> CollectionMarkerDB:
    """Get the database manager for the configured data path."""
    return CollectionMarkerDB(config.data_path)


def db() -> CollectionMarkerDB:
    """Shorthand used as ``with db() as ctx: ctx.session...``."""
    return get_db()
