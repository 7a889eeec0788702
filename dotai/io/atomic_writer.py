"""Crash-safe single-file writes.

Every write stages content into a temp file beside the destination and
``os.replace()``s it into place, so a destination is always either the old
content or the new content.
"""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Iterator

_CHUNK_SIZE = 1 << 16


class AtomicFileWriter:
    """Writes, copies and hashes files without exposing partial content."""

    def write(self, target: Path | str, content: bytes | str) -> None:
        payload = content.encode("utf-8") if isinstance(content, str) else content

        def _fill(handle) -> None:  # type: ignore[no-untyped-def]
            handle.write(payload)

        self._replace(Path(target), _fill)

    def copy(self, source: Path | str, target: Path | str) -> None:
        source_path = Path(source)

        def _fill(handle) -> None:  # type: ignore[no-untyped-def]
            with source_path.open("rb") as reader:
                shutil.copyfileobj(reader, handle, _CHUNK_SIZE)

        self._replace(Path(target), _fill)

    def ensure_dir(self, directory: Path | str) -> None:
        Path(directory).mkdir(parents=True, exist_ok=True)

    def hash(self, path: Path | str) -> str:
        digest = hashlib.sha256()
        for chunk in _iter_chunks(Path(path)):
            digest.update(chunk)
        return digest.hexdigest()

    # ------------------------------------------------------------------
    # Internals

    def _replace(self, target: Path, fill: Callable[..., None]) -> None:
        self.ensure_dir(target.parent)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                fill(handle)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise


def _iter_chunks(path: Path) -> Iterator[bytes]:
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(_CHUNK_SIZE)
            if not chunk:
                return
            yield chunk


__all__ = ["AtomicFileWriter"]
