"""Core data models shared across dotai components."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence

Scope = Literal["user", "project"]
ScopeOption = Literal["all", "user", "project"]
OverrideMode = Literal["overwrite", "skip", "ask"]
MappingAction = Literal["create", "overwrite", "skip"]
ToolStatus = Literal["success", "skipped", "partial", "failed"]
ChangeStatus = Literal["added", "modified"]

SCOPES: Sequence[Scope] = ("user", "project")
OVERRIDE_MODES: Sequence[str] = ("overwrite", "skip", "ask")


@dataclass(frozen=True)
class DeployContext:
    """Where files land for one invocation."""

    project_path: Path
    user_home: Path
    platform: str
    override_mode: OverrideMode = "overwrite"


@dataclass(frozen=True)
class PathMapping:
    """One planned file operation from the mirror to a destination."""

    source_path: Path
    target_path: Path
    scope: Scope
    action: MappingAction


@dataclass
class ToolDetectResult:
    """Outcome of probing whether a tool is installed."""

    installed: bool
    location: Optional[str] = None
    reason: Optional[str] = None
    version: Optional[str] = None


@dataclass
class ValidationIssue:
    """A source file rejected by an adapter."""

    file: str
    message: str


@dataclass
class ValidationResult:
    errors: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass
class DeployError:
    file: str
    error: str


@dataclass
class DeployResult:
    """Counts and per-file failures from one adapter deploy call."""

    files_written: int = 0
    files_skipped: int = 0
    errors: List[DeployError] = field(default_factory=list)


@dataclass
class PreviewItem:
    source_path: Path
    target_path: Path
    action: MappingAction
    reason: Optional[str] = None


@dataclass
class SyncOptions:
    """Options accepted by sync and preview."""

    tools: Optional[List[str]] = None
    scope: ScopeOption = "all"
    dry_run: bool = False
    force: bool = False
    branch: Optional[str] = None
    tag: Optional[str] = None
    commit: Optional[str] = None
    project_path: Optional[Path] = None


@dataclass
class SyncError:
    tool: str
    file: str
    error: str
    recoverable: bool


@dataclass
class ToolSyncResult:
    tool: str
    status: ToolStatus
    files_deployed: int = 0
    files_skipped: int = 0
    reason: Optional[str] = None


@dataclass
class SyncReport:
    """Structured account of one sync call.

    ``success`` is derived from the results and errors; it cannot be set.
    """

    start_time: datetime
    end_time: datetime
    total_files: int = 0
    results: List[ToolSyncResult] = field(default_factory=list)
    errors: List[SyncError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        if any(not error.recoverable for error in self.errors):
            return False
        if any(result.status in ("failed", "partial") for result in self.results):
            return False
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["success"] = self.success
        payload["start_time"] = self.start_time.isoformat()
        payload["end_time"] = self.end_time.isoformat()
        return payload


@dataclass
class PullResult:
    updated: bool
    commit_hash: str
    previous_hash: Optional[str]
    changed_files: List[str] = field(default_factory=list)
    from_cache: bool = False


@dataclass
class RepoStatus:
    local_commit: str
    remote_commit: Optional[str]
    is_offline: bool
    last_sync_time: Optional[datetime]
    cache_path: Path


@dataclass
class ToolInstallStatus:
    tool_id: str
    display_name: str
    installed: bool
    last_sync_time: Optional[datetime] = None
    version: Optional[str] = None
    location: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class StatusReport:
    repo: RepoStatus
    tools: List[ToolInstallStatus]


@dataclass
class DetectReport:
    tools: List[ToolInstallStatus]


@dataclass
class DiffChange:
    tool: str
    file: str
    status: ChangeStatus


@dataclass
class DiffReport:
    changes: List[DiffChange] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_changes": self.has_changes,
            "changes": [asdict(change) for change in self.changes],
        }


@dataclass
class ValidationReportEntry:
    tool: str
    file: str
    errors: List[str]


@dataclass
class ValidationReport:
    results: List[ValidationReportEntry] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.results

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "results": [asdict(entry) for entry in self.results],
        }


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for the source repository provider."""

    max_retries: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (self.backoff_multiplier**attempt)


__all__ = [
    "ChangeStatus",
    "DeployContext",
    "DeployError",
    "DeployResult",
    "DetectReport",
    "DiffChange",
    "DiffReport",
    "MappingAction",
    "OVERRIDE_MODES",
    "OverrideMode",
    "PathMapping",
    "PreviewItem",
    "PullResult",
    "RepoStatus",
    "RetryPolicy",
    "SCOPES",
    "Scope",
    "ScopeOption",
    "StatusReport",
    "SyncError",
    "SyncOptions",
    "SyncReport",
    "ToolDetectResult",
    "ToolInstallStatus",
    "ToolStatus",
    "ToolSyncResult",
    "ValidationIssue",
    "ValidationReport",
    "ValidationReportEntry",
    "ValidationResult",
]
