"""Sync pipeline: lock, pull, then detect/map/validate/deploy per tool."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .adapters.base import ToolAdapter
from .adapters.registry import AdapterRegistry
from .config import ResolvedConfig
from .errors import GitAuthError, LockTimeoutError, RepositoryNotConfiguredError
from .events import EventBus
from .git.provider import GitProvider
from .io.atomic_writer import AtomicFileWriter
from .io.lock import DEFAULT_ACQUIRE_TIMEOUT, SyncLock
from .logging import get_logger
from .models import (
    SCOPES,
    DeployContext,
    DetectReport,
    DiffChange,
    DiffReport,
    OverrideMode,
    PathMapping,
    PreviewItem,
    Scope,
    StatusReport,
    SyncError,
    SyncOptions,
    SyncReport,
    ToolDetectResult,
    ToolInstallStatus,
    ToolSyncResult,
    ValidationReport,
    ValidationReportEntry,
)
from .platform_paths import build_deploy_context
from .stores.sync_state import SyncStateStore


@dataclass
class _ToolOutcome:
    result: ToolSyncResult
    errors: List[SyncError] = field(default_factory=list)


class SyncOrchestrator:
    """Runs sync and its read-only variants against the registered adapters."""

    def __init__(
        self,
        config: ResolvedConfig,
        git_provider: GitProvider,
        registry: AdapterRegistry,
        writer: AtomicFileWriter,
        lock: SyncLock,
        event_bus: EventBus,
        state_store: SyncStateStore,
        *,
        home: Path | None = None,
        lock_timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
    ) -> None:
        self.config = config
        self.git_provider = git_provider
        self.registry = registry
        self.writer = writer
        self.lock = lock
        self.event_bus = event_bus
        self.state_store = state_store
        self.home = home
        self.lock_timeout = lock_timeout
        self.logger = get_logger("orchestrator")

    def update_config(self, config: ResolvedConfig) -> None:
        self.config = config

    def update_git_provider(self, git_provider: GitProvider) -> None:
        self.git_provider = git_provider

    # ------------------------------------------------------------------
    # Operations

    def sync(self, options: SyncOptions | None = None) -> SyncReport:
        """Deploy mirror files into every selected tool.

        Per-file and per-tool failures are collected into the report. Auth
        failures and lock timeouts propagate after ``sync:error``.
        """
        options = options or SyncOptions()
        self._require_repository()

        start_time = datetime.now(UTC)
        results: List[ToolSyncResult] = []
        errors: List[SyncError] = []
        acquired = False

        self.event_bus.emit(
            "sync:start",
            {
                "tools": list(options.tools or []),
                "scope": options.scope,
                "dryRun": options.dry_run,
                "force": options.force,
            },
        )

        try:
            self.lock.acquire(self.lock_timeout)
            acquired = True
            self.event_bus.emit("lock:acquired", {"lockFile": str(self.lock.lock_file)})

            self.git_provider.pull(options.branch, tag=options.tag, commit=options.commit)

            override_mode: OverrideMode = (
                "overwrite" if options.force else self.config.settings.sync.override_mode
            )
            context = self._context(options.project_path, override_mode)
            scopes = _resolve_scopes(options)

            for tool_id in self._effective_tools(options):
                outcome = self._sync_tool(tool_id, scopes, context, dry_run=options.dry_run)
                results.append(outcome.result)
                errors.extend(outcome.errors)
                self.lock.refresh()
        except (GitAuthError, LockTimeoutError) as exc:
            self.event_bus.emit("sync:error", {"error": str(exc)})
            raise
        except Exception as exc:
            self.logger.exception("Sync aborted")
            self.event_bus.emit("sync:error", {"error": str(exc)})
            errors.append(SyncError(tool="*", file="", error=str(exc), recoverable=False))
        finally:
            if acquired:
                self.lock.release()
                self.event_bus.emit("lock:released", {"lockFile": str(self.lock.lock_file)})

        report = SyncReport(
            start_time=start_time,
            end_time=datetime.now(UTC),
            total_files=sum(result.files_deployed for result in results),
            results=results,
            errors=errors,
        )
        self.logger.info(
            "Sync finished: %d file(s) across %d tool(s), success=%s",
            report.total_files,
            len(results),
            report.success,
        )
        self.event_bus.emit("sync:complete", {"report": report.to_dict()})

        if not options.dry_run:
            try:
                self.state_store.record_global_sync(results, report.end_time)
            except Exception as exc:
                self.logger.warning("Failed to persist sync state: %s", exc)

        return report

    def preview(self, options: SyncOptions | None = None) -> List[PreviewItem]:
        """List what ``sync`` would do for installed tools, without writing."""
        options = options or SyncOptions()
        self._require_repository()
        context = self._context(options.project_path, self.config.settings.sync.override_mode)
        items: List[PreviewItem] = []
        for tool_id in self._effective_tools(options):
            adapter = self.registry.get(tool_id)
            if adapter is None or not adapter.detect().installed:
                continue
            for scope in _resolve_scopes(options):
                if adapter.supports(scope):
                    items.extend(adapter.preview(adapter.get_path_mappings(scope, context)))
        return items

    def status(self) -> StatusReport:
        return StatusReport(repo=self.git_provider.get_status(), tools=self._install_statuses())

    def detect_tools(self) -> DetectReport:
        return DetectReport(tools=self._install_statuses())

    def diff(self, project_path: Path | str | None = None) -> DiffReport:
        """Compare mirror sources with their destinations by content hash."""
        self._require_repository()
        context = self._context(project_path, self.config.settings.sync.override_mode)
        changes: List[DiffChange] = []
        for adapter in self.registry.all():
            if not adapter.detect().installed:
                continue
            for mapping in self._all_mappings(adapter, context):
                target = mapping.target_path
                if not target.exists():
                    changes.append(DiffChange(tool=adapter.tool_id, file=str(target), status="added"))
                elif not self._same_content(mapping):
                    changes.append(DiffChange(tool=adapter.tool_id, file=str(target), status="modified"))
        return DiffReport(changes=changes)

    def validate(self, project_path: Path | str | None = None) -> ValidationReport:
        self._require_repository()
        context = self._context(project_path, self.config.settings.sync.override_mode)
        entries: List[ValidationReportEntry] = []
        for adapter in self.registry.all():
            for scope in adapter.supported_scopes:
                mappings = adapter.get_path_mappings(scope, context)
                if not mappings:
                    continue
                result = adapter.validate([mapping.source_path for mapping in mappings])
                entries.extend(
                    ValidationReportEntry(tool=adapter.tool_id, file=issue.file, errors=[issue.message])
                    for issue in result.errors
                )
        return ValidationReport(results=entries)

    # ------------------------------------------------------------------
    # Internals

    def _sync_tool(
        self,
        tool_id: str,
        scopes: Sequence[Scope],
        context: DeployContext,
        *,
        dry_run: bool,
    ) -> _ToolOutcome:
        """Deploy one tool and classify it.

        A scope whose files were all rejected, or any failed write, puts the
        tool in error: ``partial`` if at least one file was deployed,
        otherwise ``failed``. Rejected files next to valid ones in the same
        scope leave the tool ``success``; the rejections still surface as
        recoverable report errors.
        """
        adapter = self.registry.get(tool_id)
        if adapter is None:
            return _ToolOutcome(
                ToolSyncResult(
                    tool=tool_id,
                    status="skipped",
                    reason=f"No adapter registered for tool: {tool_id}",
                )
            )

        self.event_bus.emit("tool:deploy:start", {"tool": tool_id})
        detected = adapter.detect()
        if not detected.installed:
            reason = detected.reason or "Tool not installed"
            self.logger.debug("Skipping %s: %s", tool_id, reason)
            self.event_bus.emit("tool:deploy:skip", {"tool": tool_id, "reason": reason})
            return _ToolOutcome(ToolSyncResult(tool=tool_id, status="skipped", reason=reason))

        errors: List[SyncError] = []
        deployed = 0
        skipped = 0
        has_error = False

        for scope in scopes:
            if not adapter.supports(scope):
                continue
            mappings = adapter.get_path_mappings(scope, context)
            if not mappings:
                continue

            mappings, rejected = self._drop_invalid(adapter, mappings)
            errors.extend(rejected)
            if not mappings:
                has_error = True
                continue

            if dry_run:
                deployed += len(adapter.preview(mappings))
                continue

            outcome = adapter.deploy(mappings, self.writer)
            deployed += outcome.files_written
            skipped += outcome.files_skipped
            if outcome.files_skipped:
                self.event_bus.emit(
                    "conflict:detected",
                    {
                        "tool": tool_id,
                        "skipped": outcome.files_skipped,
                        "reason": "local-files-preserved",
                    },
                )
            for failure in outcome.errors:
                errors.append(
                    SyncError(tool=tool_id, file=failure.file, error=failure.error, recoverable=True)
                )
                has_error = True

        if has_error:
            status = "partial" if deployed else "failed"
        else:
            status = "success"
        self.event_bus.emit(
            "tool:deploy:error" if has_error else "tool:deploy:complete",
            {"tool": tool_id, "filesDeployed": deployed, "filesSkipped": skipped},
        )
        self.logger.info(
            "%s: %s (%d deployed, %d skipped)", tool_id, status, deployed, skipped
        )
        return _ToolOutcome(
            ToolSyncResult(tool=tool_id, status=status, files_deployed=deployed, files_skipped=skipped),
            errors,
        )

    def _drop_invalid(
        self, adapter: ToolAdapter, mappings: List[PathMapping]
    ) -> Tuple[List[PathMapping], List[SyncError]]:
        result = adapter.validate([mapping.source_path for mapping in mappings])
        if result.valid:
            return mappings, []
        errors: List[SyncError] = []
        for issue in result.errors:
            self.logger.warning("%s rejected %s: %s", adapter.tool_id, issue.file, issue.message)
            self.event_bus.emit(
                "tool:validate:error",
                {"tool": adapter.tool_id, "file": issue.file, "message": issue.message},
            )
            errors.append(
                SyncError(tool=adapter.tool_id, file=issue.file, error=issue.message, recoverable=True)
            )
        invalid = {issue.file for issue in result.errors}
        return [mapping for mapping in mappings if str(mapping.source_path) not in invalid], errors

    def _install_statuses(self) -> List[ToolInstallStatus]:
        statuses: List[ToolInstallStatus] = []
        for adapter in self.registry.all():
            try:
                detected = adapter.detect()
            except Exception as exc:
                self.logger.warning("Detection failed for %s: %s", adapter.tool_id, exc)
                detected = ToolDetectResult(installed=False, reason=f"Detection failed: {exc}")
            statuses.append(
                ToolInstallStatus(
                    tool_id=adapter.tool_id,
                    display_name=adapter.display_name,
                    installed=detected.installed,
                    last_sync_time=self._last_sync_time(adapter.tool_id),
                    version=detected.version,
                    location=detected.location,
                    reason=detected.reason,
                )
            )
        return statuses

    def _last_sync_time(self, tool_id: str) -> Optional[datetime]:
        try:
            return self.state_store.get_tool_sync_time(tool_id)
        except OSError as exc:
            self.logger.debug("Cannot read sync state for %s: %s", tool_id, exc)
            return None

    def _all_mappings(self, adapter: ToolAdapter, context: DeployContext) -> List[PathMapping]:
        mappings: List[PathMapping] = []
        for scope in adapter.supported_scopes:
            mappings.extend(adapter.get_path_mappings(scope, context))
        return mappings

    def _same_content(self, mapping: PathMapping) -> bool:
        try:
            return self.writer.hash(mapping.source_path) == self.writer.hash(mapping.target_path)
        except OSError:
            return False

    def _effective_tools(self, options: SyncOptions) -> List[str]:
        if options.tools:
            return list(options.tools)
        if self.config.effective_tools:
            return list(self.config.effective_tools)
        return self.registry.tool_ids()

    def _context(self, project_path: Path | str | None, override_mode: OverrideMode) -> DeployContext:
        return build_deploy_context(project_path or Path.cwd(), override_mode, home=self.home)

    def _require_repository(self) -> None:
        if not self.config.settings.repository.url.strip():
            raise RepositoryNotConfiguredError()


def _resolve_scopes(options: SyncOptions) -> Sequence[Scope]:
    if options.scope == "all":
        return SCOPES
    return (options.scope,)


__all__ = ["SyncOrchestrator"]
