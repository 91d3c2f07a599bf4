"""Root conftest.py for the mksrga monorepo.

Puts every member package's ``src`` directory on the import path, registers
the shared markers and tags tests that rely on mocks with ``uses_mock`` so a
run can exclude them (``pytest -m "not uses_mock"``) when checking how much
of the code the emulator-backed tests reach on their own.
"""

from __future__ import annotations

import ast
import inspect
import sys
import textwrap
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.nodes import Item


PROJECT_ROOT = Path(__file__).parent
for pkg_dir in PROJECT_ROOT.glob("mksrga-*/src"):
    if str(pkg_dir) not in sys.path:
        sys.path.insert(0, str(pkg_dir))

_MOCK_NAMES = frozenset({"MagicMock", "Mock", "patch", "create_autospec", "PropertyMock", "mocker"})


def pytest_configure(config: Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "uses_mock: Test uses mocking (auto-detected)")
    config.addinivalue_line("markers", "integration: Test requiring a real RGA")
    config.addinivalue_line("markers", "slow: Slow-running test")


def _uses_mock(item: Item) -> bool:
    """Return True if the test's name, fixtures or body refer to mocks."""
    if "mock" in item.name.lower():
        return True
    fixtures = getattr(item, "fixturenames", ())
    if any("mock" in name.lower() for name in fixtures):
        return True
    obj = getattr(item, "obj", None)
    if obj is None:
        return False
    try:
        tree = ast.parse(textwrap.dedent(inspect.getsource(obj)))
    except (OSError, TypeError, SyntaxError):
        return False
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and node.id in _MOCK_NAMES:
            return True
        if isinstance(node, ast.Attribute) and node.attr in _MOCK_NAMES:
            return True
    return False


def pytest_collection_modifyitems(config: Config, items: list[Item]) -> None:
    """Mark tests that use mocking."""
    for item in items:
        if not item.get_closest_marker("uses_mock") and _uses_mock(item):
            item.add_marker(pytest.mark.uses_mock)


def pytest_report_header(config: Config) -> list[str]:
    """Add a header line to the pytest report."""
    return ["mksrga monorepo test suite"]
