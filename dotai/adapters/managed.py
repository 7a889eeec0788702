"""Adapters driven by declarative specs.

A tool is described by which mirror files it takes for each scope and a pure
function placing each relative path under the user home or project root.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence

from ..models import DeployContext, PathMapping, Scope, ToolDetectResult
from ..platform_paths import user_home, which_command
from .base import ToolAdapter, determine_action

TargetResolver = Callable[[DeployContext, str], Path]


@dataclass(frozen=True)
class ScopeSpec:
    """Glob patterns under ``<tool>/<scope>/`` and their destination resolver."""

    patterns: Sequence[str]
    target: TargetResolver


@dataclass(frozen=True)
class DetectSpec:
    """Installation probes, tried in order: executables, extensions, home dirs."""

    commands: Sequence[str] = ()
    extension_dirs: Sequence[str] = ()
    extension_prefix: Optional[str] = None
    home_dirs: Sequence[str] = ()
    missing_reason: str = "Tool not installed"


@dataclass(frozen=True)
class AdapterSpec:
    tool_id: str
    display_name: str
    scopes: Mapping[Scope, ScopeSpec]
    detect: DetectSpec
    repo_dir: Optional[str] = None
    allowed_extensions: Sequence[str] = field(default_factory=tuple)

    @property
    def source_dir(self) -> str:
        return self.repo_dir or self.tool_id


class ManagedToolAdapter(ToolAdapter):
    """Generic adapter realising one ``AdapterSpec`` against a mirror."""

    def __init__(self, spec: AdapterSpec, repo_local_path: Path | str, *, home: Path | None = None) -> None:
        self.spec = spec
        self.repo_local_path = Path(repo_local_path)
        self.home = home
        self.tool_id = spec.tool_id
        self.display_name = spec.display_name
        self.supported_scopes = tuple(scope for scope in ("user", "project") if scope in spec.scopes)
        self.allowed_extensions = tuple(spec.allowed_extensions)

    def detect(self) -> ToolDetectResult:
        probes = self.spec.detect
        home = self.home or user_home()

        for command in probes.commands:
            location = which_command(command)
            if location:
                return ToolDetectResult(installed=True, location=location)

        if probes.extension_prefix:
            for relative in probes.extension_dirs:
                directory = home / relative
                try:
                    entries = os.listdir(directory)
                except OSError:
                    continue
                if any(entry.startswith(probes.extension_prefix) for entry in entries):
                    return ToolDetectResult(installed=True, location=str(directory))

        for relative in probes.home_dirs:
            directory = home / relative
            if directory.is_dir():
                return ToolDetectResult(installed=True, location=str(directory))

        return ToolDetectResult(installed=False, reason=probes.missing_reason)

    def get_path_mappings(self, scope: Scope, context: DeployContext) -> List[PathMapping]:
        scope_spec = self.spec.scopes.get(scope)
        if scope_spec is None:
            return []
        repo_base = self.repo_local_path / self.spec.source_dir / scope
        if not repo_base.is_dir():
            return []

        mappings: List[PathMapping] = []
        for relative in _collect_files(repo_base, scope_spec.patterns):
            target = scope_spec.target(context, relative)
            mappings.append(
                PathMapping(
                    source_path=repo_base / relative,
                    target_path=target,
                    scope=scope,
                    action=determine_action(target, context.override_mode),
                )
            )
        return mappings


def _collect_files(base: Path, patterns: Sequence[str]) -> List[str]:
    seen: dict[str, None] = {}
    for pattern in patterns:
        for match in sorted(base.glob(pattern)):
            if match.is_file():
                seen.setdefault(match.relative_to(base).as_posix(), None)
    return list(seen)


__all__ = ["AdapterSpec", "DetectSpec", "ManagedToolAdapter", "ScopeSpec", "TargetResolver"]
