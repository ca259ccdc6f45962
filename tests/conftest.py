"""Shared pytest configuration and fixtures for the test suite."""

import atexit
import os
import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="cm-tests-"))
os.environ["CM_DATA_PATH"] = str(_TEST_DATA_DIR)
_TEST_CONFIG_FILE = _TEST_DATA_DIR / "config.yaml"

_TEST_CONFIG_FILE.write_text(
    yaml.safe_dump(
        {
            "jellyfin": {
                "url": "http://jellyfin:8096",
                "token": "jellyfin-token",
                "user_id": "user-1",
            },
        },
        sort_keys=False,
    ),
    encoding="utf-8",
)

from src.config import settings as settings_module  # noqa: E402
from src.models.db.base import Base  # noqa: E402
from src.web.state import get_app_state  # noqa: E402

settings_module.get_config.cache_clear()


@pytest.fixture(autouse=True)
def _reset_app_state():
    """Ensure each test interacts with a fresh AppState instance."""
    get_app_state.cache_clear()
    state = get_app_state()
    yield state
    get_app_state.cache_clear()


@pytest.fixture
def memory_db() -> Iterator[object]:
    """In-memory SQLite database exposing the ``with db() as ctx`` interface."""
    engine = create_engine(
        "sqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, future=True, autoflush=False)

    class _DB:
        def __init__(self) -> None:
            self._session = None

        def __enter__(self):
            self._session = session_factory()
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if self._session is not None:
                self._session.close()
                self._session = None

        @property
        def session(self):
            if self._session is None:
                self._session = session_factory()
            return self._session

        def close(self) -> None:
            if self._session is not None:
                self._session.close()
                self._session = None

    db_instance = _DB()
    try:
        yield db_instance
    finally:
        db_instance.close()
        engine.dispose()


@atexit.register
def _cleanup_test_data_dir() -> None:
    """Remove the temporary test data directory after the test session."""
    shutil.rmtree(_TEST_DATA_DIR, ignore_errors=True)
