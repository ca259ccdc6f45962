"""Tests for settings configuration utilities."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.config.settings import (
    CacheConfig,
    CollectionMarkerConfig,
    JellyfinConfig,
    find_yaml_config_file,
)
from src.models.media import MediaKind


@pytest.fixture(autouse=True)
def isolate_working_directory(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Set the working directory to a temporary path for each test."""
    monkeypatch.chdir(tmp_path)


def test_find_yaml_config_file_prefers_data_path(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that find_yaml_config_file prefers CM_DATA_PATH environment variable."""
    monkeypatch.setenv("CM_DATA_PATH", str(tmp_path))
    config_file = tmp_path / "config.yml"
    config_file.write_text("marker_tag: Loose", encoding="utf-8")

    result = find_yaml_config_file()

    assert result == config_file.resolve()


def test_config_loads_yaml_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Values from config.yaml in the data path are applied."""
    monkeypatch.setenv("CM_DATA_PATH", str(tmp_path))
    (tmp_path / "config.yaml").write_text(
        "jellyfin:\n  url: http://media:8096/\n  token: abc\n"
        "marker_tag: Orphan\nkinds: [movie]\nauto_run:\n  enabled: true\n",
        encoding="utf-8",
    )

    config = CollectionMarkerConfig()

    assert config.jellyfin.url == "http://media:8096"
    assert config.jellyfin.token.get_secret_value() == "abc"
    assert config.marker_tag == "Orphan"
    assert config.kinds == [MediaKind.MOVIE]
    assert config.auto_run.enabled is True
    assert config.data_path == tmp_path.resolve()


def test_config_defaults() -> None:
    """Defaults match the documented values."""
    config = CollectionMarkerConfig()

    assert config.marker_tag == "NotInCollection"
    assert config.kinds == [MediaKind.MOVIE, MediaKind.SERIES]
    assert config.cache.movie_membership_ttl == 3600
    assert config.cache.series_membership_ttl == 300
    assert config.auto_run.interval == 300
    assert config.auto_run.initial_delay == 15
    assert config.update_delay == pytest.approx(0.05)
    assert config.watcher.debounce_window == pytest.approx(1.2)


def test_marker_tag_must_not_be_blank() -> None:
    """A whitespace-only marker tag is rejected."""
    with pytest.raises(ValidationError):
        CollectionMarkerConfig(marker_tag="   ")


def test_kinds_are_deduplicated_and_case_insensitive() -> None:
    """Kinds accept any case and duplicates collapse."""
    config = CollectionMarkerConfig(kinds=["Series", "movie", "SERIES"])

    assert config.kinds == [MediaKind.SERIES, MediaKind.MOVIE]


def test_kinds_must_not_be_empty() -> None:
    """At least one media kind must be reconciled."""
    with pytest.raises(ValidationError):
        CollectionMarkerConfig(kinds=[])


def test_ttls_must_be_positive() -> None:
    """Zero or negative TTLs are rejected."""
    with pytest.raises(ValidationError):
        CacheConfig(movie_membership_ttl=0)


def test_membership_ttl_per_kind() -> None:
    """membership_ttl picks the value configured for the kind."""
    cache = CacheConfig(movie_membership_ttl=100, series_membership_ttl=50)

    assert cache.membership_ttl(MediaKind.MOVIE) == 100
    assert cache.membership_ttl(MediaKind.SERIES) == 50


def test_jellyfin_config_strips_trailing_slash() -> None:
    """Trailing slashes are removed from the server URL."""
    assert JellyfinConfig(url="http://host:8096///").url == "http://host:8096"


def test_config_str_hides_token() -> None:
    """The string representation never includes the token."""
    config = CollectionMarkerConfig(jellyfin={"token": "super-secret"})

    assert "super-secret" not in str(config)
    assert "NotInCollection" in str(config)
