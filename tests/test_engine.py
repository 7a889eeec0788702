"""Tests for the engine context."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List

import pytest

from dotai.adapters import ManagedToolAdapter, spec_for
from dotai.config import ConfigWriter
from dotai.engine import DotAIEngine, create_engine
from dotai.errors import RepositoryNotConfiguredError
from dotai.events import SyncEvent
from dotai.models import SyncOptions

REPO_URL = "https://example.com/team/ai-config.git"


class CloningRunner:
    """Fake git that materialises mirror files on clone."""

    def __init__(self, files: dict[str, str]) -> None:
        self.files = files
        self.calls: List[List[str]] = []

    def __call__(self, args, cwd=None, timeout=None):  # type: ignore[no-untyped-def]
        command = list(args)
        self.calls.append(command)
        if command[1] == "clone":
            destination = Path(command[-1])
            (destination / ".git").mkdir(parents=True)
            for relative, content in self.files.items():
                path = destination / relative
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")
            return ""
        if command[1] == "rev-parse":
            return "abc123\n"
        return ""


class OfflineRunner:
    """Fake git whose fetch always fails with a network error."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []

    def __call__(self, args, cwd=None, timeout=None):  # type: ignore[no-untyped-def]
        command = list(args)
        self.calls.append(command)
        if command[1] == "fetch":
            raise subprocess.CalledProcessError(
                128,
                command,
                output="",
                stderr="fatal: unable to access 'https://example.com/': Could not resolve host: example.com",
            )
        if command[1] == "rev-parse":
            return "cached\n"
        return ""


def _engine(tmp_path: Path, home: Path, project: Path, **kwargs: object) -> DotAIEngine:
    return create_engine(
        tmp_path / "settings.yaml",
        project,
        home=home,
        include_plugins=False,
        sleep=lambda _: None,
        **kwargs,
    )


def _configure(tmp_path: Path, url: str = REPO_URL, **sync: object) -> None:
    partial: dict[str, object] = {"repository": {"url": url}}
    if sync:
        partial["sync"] = dict(sync)
    ConfigWriter(tmp_path / "settings.yaml").update_settings(partial)


def test_unconfigured_engine_reports_precondition(tmp_path: Path, home: Path, project: Path) -> None:
    with _engine(tmp_path, home, project) as engine:
        with pytest.raises(RepositoryNotConfiguredError):
            engine.sync()
        with pytest.raises(RepositoryNotConfiguredError):
            engine.preview()
        report = engine.detect_tools()

    assert len(report.tools) == 14


def test_sync_end_to_end_with_fake_git(tmp_path: Path, home: Path, project: Path) -> None:
    _configure(tmp_path, overrideMode="overwrite")
    (home / ".cursor").mkdir()
    runner = CloningRunner({"cursor/user/rules/general.mdc": "be concise"})
    events: List[SyncEvent] = []

    with _engine(tmp_path, home, project, git_runner=runner) as engine:
        engine.event_bus.subscribe("*", events.append)
        options = SyncOptions(tools=["cursor"])
        report = engine.sync(options)

    assert options.project_path is None
    assert report.success is True
    assert (home / ".cursor" / "rules" / "general.mdc").read_text(encoding="utf-8") == "be concise"
    assert runner.calls[0][1] == "clone"
    assert events[0].type == "sync:start"
    assert events[-1].type == "sync:complete"


def test_sync_deploys_from_stale_mirror_when_offline(tmp_path: Path, home: Path, project: Path) -> None:
    _configure(tmp_path, overrideMode="overwrite")
    (home / ".cursor").mkdir()
    runner = OfflineRunner()
    events: List[SyncEvent] = []

    with _engine(tmp_path, home, project, git_runner=runner) as engine:
        mirror = engine.config.repo_local_path
        (mirror / ".git").mkdir(parents=True)
        rule = mirror / "cursor" / "user" / "rules" / "general.mdc"
        rule.parent.mkdir(parents=True)
        rule.write_text("from cache", encoding="utf-8")
        engine.event_bus.subscribe("*", events.append)
        report = engine.sync(SyncOptions(tools=["cursor"]))

    assert report.success is True
    assert report.errors == []
    assert report.results[0].status == "success"
    assert (home / ".cursor" / "rules" / "general.mdc").read_text(encoding="utf-8") == "from cache"
    assert [call[1] for call in runner.calls].count("fetch") == 4
    types = [event.type for event in events]
    assert types.count("git:offline") == 1
    assert "git:pull:complete" not in types
    assert (
        types.index("lock:acquired")
        < types.index("git:pull:start")
        < types.index("git:offline")
        < types.index("tool:deploy:start")
        < types.index("tool:deploy:complete")
        < types.index("lock:released")
        < types.index("sync:complete")
    )


def test_update_settings_reloads_and_ignores_its_own_echo(
    tmp_path: Path, home: Path, project: Path
) -> None:
    _configure(tmp_path)
    with _engine(tmp_path, home, project) as engine:
        engine.update_settings({"repository": {"branch": "develop"}})

        assert engine.config.settings.repository.branch == "develop"
        assert engine.git_provider.branch == "develop"
        assert engine.settings_guard.state == "applying"
        assert engine.handle_settings_changed() is False
        assert engine.settings_guard.state == "idle"

        ConfigWriter(tmp_path / "settings.yaml").update_settings({"repository": {"branch": "hotfix"}})
        assert engine.handle_settings_changed() is True
        assert engine.config.settings.repository.branch == "hotfix"


def test_external_edit_during_applying_is_not_swallowed(tmp_path: Path, home: Path, project: Path) -> None:
    _configure(tmp_path)
    with _engine(tmp_path, home, project) as engine:
        engine.update_settings({"log": {"level": "warn"}})
        ConfigWriter(tmp_path / "settings.yaml").update_settings({"log": {"level": "error"}})

        assert engine.handle_settings_changed() is True
        assert engine.config.settings.log.level == "error"


def test_repository_change_rebinds_provider_and_adapters(
    tmp_path: Path, home: Path, project: Path
) -> None:
    _configure(tmp_path)
    with _engine(tmp_path, home, project) as engine:
        custom = ManagedToolAdapter(spec_for("trae"), tmp_path / "custom-mirror", home=home)
        engine.register_adapter(custom)
        old_mirror = engine.config.repo_local_path

        engine.apply_settings({"repository": {"url": "https://example.com/other.git"}})

        assert engine.config.repo_local_path != old_mirror
        assert engine.git_provider.repo_url == "https://example.com/other.git"
        cursor = engine.registry.get("cursor")
        assert isinstance(cursor, ManagedToolAdapter)
        assert cursor.repo_local_path == engine.config.repo_local_path
        assert engine.registry.get("trae") is custom


def test_apply_settings_does_not_touch_the_file(tmp_path: Path, home: Path, project: Path) -> None:
    _configure(tmp_path)
    before = (tmp_path / "settings.yaml").read_text(encoding="utf-8")
    with _engine(tmp_path, home, project) as engine:
        engine.apply_settings({"sync": {"overrideMode": "skip"}})
        assert engine.config.settings.sync.override_mode == "skip"

    assert (tmp_path / "settings.yaml").read_text(encoding="utf-8") == before


def test_log_level_follows_settings(tmp_path: Path, home: Path, project: Path) -> None:
    _configure(tmp_path)
    with _engine(tmp_path, home, project) as engine:
        engine.apply_settings({"log": {"level": "debug"}})
        assert logging.getLogger("dotai").level == logging.DEBUG
        engine.apply_settings({"log": {"level": "error"}})
        assert logging.getLogger("dotai").level == logging.ERROR


def test_close_drops_subscriptions(tmp_path: Path, home: Path, project: Path) -> None:
    engine = _engine(tmp_path, home, project)
    engine.event_bus.subscribe("*", lambda event: None)

    engine.close()
    engine.close()

    assert len(engine.event_bus) == 0


def test_settings_overrides_apply_at_creation(tmp_path: Path, home: Path, project: Path) -> None:
    _configure(tmp_path)
    with _engine(tmp_path, home, project, settings_overrides={"repository": {"branch": "qa"}}) as engine:
        assert engine.config.settings.repository.branch == "qa"
        assert engine.git_provider.branch == "qa"
