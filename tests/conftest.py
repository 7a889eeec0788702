from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.mirror_builder import MirrorBuilder


@pytest.fixture(autouse=True)
def dotai_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep settings, mirrors, lock and state files inside the test sandbox."""
    root = tmp_path / "dotai-home"
    monkeypatch.setenv("DOTAI_HOME", str(root))
    return root


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def mirror(tmp_path: Path) -> MirrorBuilder:
    """Provide a reusable mirror builder rooted at the pytest tmp_path."""
    return MirrorBuilder(tmp_path)
