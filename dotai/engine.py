"""The owned engine context that front ends (CLI, HTTP service) drive."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .adapters import build_registry
from .adapters.base import ToolAdapter
from .config import ConfigResolver, ConfigWriter, ResolvedConfig, merge_sections
from .events import EventBus
from .git.provider import GitProvider, Runner
from .io.atomic_writer import AtomicFileWriter
from .io.lock import DEFAULT_ACQUIRE_TIMEOUT, SyncLock
from .logging import apply_level, get_logger
from .models import (
    DetectReport,
    DiffReport,
    PreviewItem,
    StatusReport,
    SyncOptions,
    SyncReport,
    ValidationReport,
)
from .orchestrator import SyncOrchestrator
from .platform_paths import dotai_home
from .settings_guard import SettingsSyncGuard
from .stores.sync_state import SyncStateStore

LOCK_FILENAME = ".sync.lock"


class DotAIEngine:
    """Wires every component for one project and owns their lifetime."""

    def __init__(
        self,
        *,
        settings_path: Path | str | None = None,
        project_path: Path | str | None = None,
        settings_overrides: Mapping[str, Any] | None = None,
        home: Path | None = None,
        git_runner: Runner | None = None,
        sleep: Callable[[float], None] | None = None,
        lock_timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
        include_plugins: bool = True,
    ) -> None:
        self.logger = get_logger("engine")
        self.project_path = Path(project_path or Path.cwd()).expanduser().resolve()
        self.home = home
        self.event_bus = EventBus()
        self.writer = AtomicFileWriter()
        self.resolver = ConfigResolver(settings_path, home=home)
        self.config_writer = ConfigWriter(self.resolver.settings_path, writer=self.writer)
        self.settings_guard = SettingsSyncGuard()
        self._overrides: Dict[str, Any] = dict(settings_overrides or {})
        self._custom_adapters: List[ToolAdapter] = []
        self._git_runner = git_runner
        self._sleep = sleep
        self._include_plugins = include_plugins
        self._closed = False

        self.config = self._resolve()
        apply_level(self.config.settings.log.level)
        self.registry = build_registry(
            self.config.repo_local_path, home=home, include_plugins=include_plugins
        )
        self.state_store = SyncStateStore(home=home, writer=self.writer)
        self.lock = SyncLock(dotai_home(home) / LOCK_FILENAME)
        self.orchestrator = SyncOrchestrator(
            self.config,
            self._build_git_provider(self.config),
            self.registry,
            self.writer,
            self.lock,
            self.event_bus,
            self.state_store,
            home=home,
            lock_timeout=lock_timeout,
        )

    # ------------------------------------------------------------------
    # Operations

    def sync(self, options: SyncOptions | None = None) -> SyncReport:
        return self.orchestrator.sync(self._with_project(options))

    def preview(self, options: SyncOptions | None = None) -> List[PreviewItem]:
        return self.orchestrator.preview(self._with_project(options))

    def status(self) -> StatusReport:
        return self.orchestrator.status()

    def detect_tools(self) -> DetectReport:
        return self.orchestrator.detect_tools()

    def diff(self, project_path: Path | str | None = None) -> DiffReport:
        return self.orchestrator.diff(project_path or self.project_path)

    def validate(self, project_path: Path | str | None = None) -> ValidationReport:
        return self.orchestrator.validate(project_path or self.project_path)

    # ------------------------------------------------------------------
    # Extension and configuration

    @property
    def git_provider(self) -> GitProvider:
        return self.orchestrator.git_provider

    def register_adapter(self, adapter: ToolAdapter) -> None:
        """Add or replace an adapter; it survives config reloads."""
        self._custom_adapters = [a for a in self._custom_adapters if a.tool_id != adapter.tool_id]
        self._custom_adapters.append(adapter)
        self.registry.register(adapter)

    def reload_config(self) -> ResolvedConfig:
        """Re-read settings and rebind anything that depends on the mirror location."""
        previous = self.config
        self.config = self._resolve()
        apply_level(self.config.settings.log.level)
        self.orchestrator.update_config(self.config)

        repo_changed = (
            previous.settings.repository.url != self.config.settings.repository.url
            or previous.settings.repository.branch != self.config.settings.repository.branch
        )
        if repo_changed:
            self.logger.info(
                "Repository changed to %s (%s)",
                self.config.settings.repository.url or "<unset>",
                self.config.settings.repository.branch,
            )
            self.orchestrator.update_git_provider(self._build_git_provider(self.config))
        if previous.repo_local_path != self.config.repo_local_path:
            fresh = build_registry(
                self.config.repo_local_path, home=self.home, include_plugins=self._include_plugins
            )
            for adapter in fresh.all():
                self.registry.register(adapter)
            for adapter in self._custom_adapters:
                self.registry.register(adapter)
        return self.config

    def apply_settings(self, partial: Mapping[str, Any]) -> ResolvedConfig:
        """Layer ``partial`` over the on-disk settings in memory only."""
        self._overrides = merge_sections(self._overrides, partial, sections_only=False)
        return self.reload_config()

    def update_settings(self, partial: Mapping[str, Any]) -> ResolvedConfig:
        """Persist ``partial`` to the settings file, then reload."""
        digest = self.config_writer.update_settings(partial)
        self.settings_guard.begin(digest)
        return self.reload_config()

    def handle_settings_changed(self) -> bool:
        """React to a change notification for the settings file.

        Returns True when the configuration was reloaded, False when the
        notification was the echo of ``update_settings``.
        """
        if self.settings_guard.observe(self.resolver.settings_path):
            self.logger.debug("Ignoring settings change written by this engine")
            return False
        self.reload_config()
        return True

    # ------------------------------------------------------------------
    # Lifecycle

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.event_bus.clear()
        self.settings_guard.cancel()

    def __enter__(self) -> "DotAIEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals

    def _resolve(self) -> ResolvedConfig:
        if self._overrides:
            return self.resolver.resolve_with_overrides(self.project_path, self._overrides)
        return self.resolver.resolve(self.project_path)

    def _build_git_provider(self, config: ResolvedConfig) -> GitProvider:
        kwargs: Dict[str, Any] = {"runner": self._git_runner}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return GitProvider(
            config.settings.repository.url,
            config.settings.repository.branch,
            config.repo_local_path,
            self.event_bus,
            **kwargs,
        )

    def _with_project(self, options: Optional[SyncOptions]) -> SyncOptions:
        options = options or SyncOptions()
        if options.project_path is None:
            return replace(options, project_path=self.project_path)
        return options


def create_engine(
    config_path: Path | str | None = None,
    project_path: Path | str | None = None,
    settings_overrides: Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> DotAIEngine:
    return DotAIEngine(
        settings_path=config_path,
        project_path=project_path,
        settings_overrides=settings_overrides,
        **kwargs,
    )


__all__ = ["DotAIEngine", "LOCK_FILENAME", "create_engine"]
