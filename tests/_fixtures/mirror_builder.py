"""Helper utilities for laying out a configuration mirror in tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Mapping


class MirrorBuilder:
    """Writes ``<tool>/<scope>/...`` files into a throwaway mirror directory."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "mirror"
        self.root.mkdir()

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries into the mirror."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def path(self) -> Path:
        """Return the mirror root path."""
        return self.root


__all__ = ["MirrorBuilder"]
