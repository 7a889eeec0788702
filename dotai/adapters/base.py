"""Base contract for per-tool adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Sequence

from ..io.atomic_writer import AtomicFileWriter
from ..logging import get_logger
from ..models import (
    DeployContext,
    DeployError,
    DeployResult,
    MappingAction,
    OverrideMode,
    PathMapping,
    PreviewItem,
    Scope,
    ToolDetectResult,
    ValidationIssue,
    ValidationResult,
)

logger = get_logger("adapters")


class ToolAdapter(ABC):
    """Contract for deploying mirror files into one tool's configuration area.

    Subclasses provide detection and path mapping; validation, deployment and
    preview are shared.
    """

    tool_id: str
    display_name: str
    supported_scopes: Sequence[Scope] = ("user", "project")
    allowed_extensions: Sequence[str] = ()

    @abstractmethod
    def detect(self) -> ToolDetectResult:
        """Report whether the tool is installed on this machine."""

    @abstractmethod
    def get_path_mappings(self, scope: Scope, context: DeployContext) -> List[PathMapping]:
        """Enumerate mirror files for ``scope`` and where each one lands."""

    def validate(self, files: Iterable[Path | str]) -> ValidationResult:
        if not self.allowed_extensions:
            return ValidationResult()
        allowed = ", ".join(self.allowed_extensions)
        errors = [
            ValidationIssue(
                file=str(file),
                message=f"File extension not allowed. Allowed: {allowed}",
            )
            for file in files
            if not str(file).endswith(tuple(self.allowed_extensions))
        ]
        return ValidationResult(errors=errors)

    def deploy(self, mappings: Iterable[PathMapping], writer: AtomicFileWriter) -> DeployResult:
        """Copy every non-skip mapping; a failing file does not stop the batch."""
        result = DeployResult()
        for mapping in mappings:
            if mapping.action == "skip":
                result.files_skipped += 1
                continue
            try:
                writer.copy(mapping.source_path, mapping.target_path)
            except OSError as exc:
                logger.warning("Failed to deploy %s: %s", mapping.target_path, exc)
                result.errors.append(DeployError(file=str(mapping.target_path), error=str(exc)))
                continue
            result.files_written += 1
        return result

    def preview(self, mappings: Iterable[PathMapping]) -> List[PreviewItem]:
        return [
            PreviewItem(
                source_path=mapping.source_path,
                target_path=mapping.target_path,
                action=mapping.action,
            )
            for mapping in mappings
        ]

    def supports(self, scope: Scope) -> bool:
        return scope in self.supported_scopes


def determine_action(target: Path, override_mode: OverrideMode = "overwrite") -> MappingAction:
    """``skip`` never overwrites; ``overwrite`` and ``ask`` both replace."""
    if not target.exists():
        return "create"
    if override_mode == "skip":
        return "skip"
    return "overwrite"


__all__ = ["ToolAdapter", "determine_action"]
