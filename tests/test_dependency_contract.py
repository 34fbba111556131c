"""Dependency contract tests for runtime GIS stack.

This module locks expected runtime dependency behavior.
"""

from pathlib import Path
import tomllib


def _project() -> dict:
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
    return tomllib.loads(pyproject.read_text(encoding="utf-8"))["project"]


def test_runtime_dependencies_contract() -> None:
    """Ensure runtime dependencies carry the shapefile and geometry stack.

    Returns
    -------
    None

    Examples
    --------
    >>> test_runtime_dependencies_contract()
    """
    deps = _project()["dependencies"]
    for name in ("geopandas", "pyshp", "pyproj", "shapely", "loguru"):
        assert any(dep.startswith(name) for dep in deps), name


def test_no_gui_toolkit_dependency() -> None:
    """Ensure the headless package does not pull a GUI toolkit.

    Returns
    -------
    None
    """
    deps = _project()["dependencies"]
    assert not any(dep.lower().startswith(("pyside6", "pyqtgraph")) for dep in deps)


def test_test_extra_has_async_support() -> None:
    extras = _project()["optional-dependencies"]["test"]
    assert any(dep.startswith("pytest-asyncio") for dep in extras)
