"""Shared fixtures for leasedfilelock tests."""

from pathlib import Path

import pytest


@pytest.fixture
def target(tmp_path: Path) -> Path:
    """A freshly created file to guard with a lock."""
    path = tmp_path / "resource.dat"
    path.touch()
    return path
