"""Version helpers."""

from functools import lru_cache
from pathlib import Path

import tomlkit
from tomlkit.exceptions import TOMLKitError

__all__ = ["get_pyproject_version"]

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


@lru_cache(maxsize=1)
def get_pyproject_version(root: Path = PROJECT_ROOT) -> str:
    """Read the project version from ``pyproject.toml``.

    Args:
        root (Path): Directory holding the ``pyproject.toml`` file.

    Returns:
        str: The declared version, or ``"unknown"`` when it cannot be read.
    """
    toml_file = root / "pyproject.toml"
    if not toml_file.is_file():
        return "unknown"

    try:
        toml_data = tomlkit.parse(toml_file.read_text(encoding="utf-8"))
    except (OSError, TOMLKitError):
        return "unknown"

    project = toml_data.get("project", {})
    return str(project.get("version", "unknown"))
