"""Locations on the local machine: home directories, executables, deploy context."""

from __future__ import annotations

import os
import re
import shutil
import sys
from pathlib import Path
from typing import Optional

from .models import DeployContext, OverrideMode

ENV_HOME_KEY = "DOTAI_HOME"
_EXECUTABLE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def user_home() -> Path:
    return Path.home()


def dotai_home(home: Path | None = None) -> Path:
    """Return the directory holding settings, mirrors, lock and state files."""
    override = os.environ.get(ENV_HOME_KEY)
    if override:
        return Path(override).expanduser()
    return (home or user_home()) / ".dotai"


def which_command(executable: str) -> Optional[str]:
    """Locate an executable on PATH; names with path characters are rejected."""
    if not _EXECUTABLE_PATTERN.match(executable):
        return None
    return shutil.which(executable)


def build_deploy_context(
    project_path: Path | str,
    override_mode: OverrideMode = "overwrite",
    *,
    home: Path | None = None,
) -> DeployContext:
    return DeployContext(
        project_path=Path(project_path).expanduser().resolve(),
        user_home=home or user_home(),
        platform=sys.platform,
        override_mode=override_mode,
    )


__all__ = [
    "ENV_HOME_KEY",
    "build_deploy_context",
    "dotai_home",
    "user_home",
    "which_command",
]
