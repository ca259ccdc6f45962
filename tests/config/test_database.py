"""Tests for the SQLite database manager."""

from pathlib import Path

import pytest
from sqlalchemy import inspect, text

from src.config.database import DB_FILENAME, CollectionMarkerDB, alembic_config
from src.exceptions import DataPathError


def test_data_path_pointing_at_file_is_rejected(tmp_path: Path) -> None:
    data_file = tmp_path / "data"
    data_file.write_text("not a directory")

    with pytest.raises(DataPathError, match="is a file"):
        CollectionMarkerDB(data_file)


def test_missing_data_dir_is_created_and_migrated(tmp_path: Path) -> None:
    data_path = tmp_path / "nested" / "data"

    database = CollectionMarkerDB(data_path)
    try:
        assert (data_path / DB_FILENAME).is_file()
        tables = set(inspect(database.engine).get_table_names())
        assert {"cache_entries", "house_keeping"} <= tables

        with database as ctx:
            mode = ctx.session.execute(text("PRAGMA journal_mode")).scalar()
        assert str(mode).lower() == "wal"
    finally:
        database.dispose()


def test_alembic_config_targets_database_file(tmp_path: Path) -> None:
    cfg = alembic_config(tmp_path / DB_FILENAME)

    assert cfg.get_main_option("sqlalchemy.url") == (
        f"sqlite:///{tmp_path / DB_FILENAME}"
    )
    assert Path(cfg.get_main_option("script_location")).name == "alembic"
