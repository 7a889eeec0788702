"""Settings resolution and persistence (~/.dotai/settings.yaml, .dotai/profile.yaml)."""

from __future__ import annotations

import copy
import hashlib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from .errors import ConfigError
from .io.atomic_writer import AtomicFileWriter
from .logging import get_logger
from .models import OVERRIDE_MODES, OverrideMode
from .platform_paths import dotai_home

SETTINGS_FILENAME = "settings.yaml"
PROFILE_DIRNAME = ".dotai"
PROFILE_FILENAME = "profile.yaml"
SECTIONS: Sequence[str] = ("repository", "sync", "log")

_AUTH_METHODS = ("ssh", "https")
_LOG_LEVELS = ("debug", "info", "warn", "error")

DEFAULT_SETTINGS: Dict[str, Dict[str, Any]] = {
    "repository": {"url": "", "branch": "main", "auth": "ssh"},
    "sync": {
        "autoSync": True,
        "intervalMinutes": 0,
        "tools": "all",
        "overrideMode": "ask",
    },
    "log": {"level": "info"},
}

logger = get_logger("config")


@dataclass(frozen=True)
class RepositorySettings:
    url: str = ""
    branch: str = "main"
    auth: str = "ssh"


@dataclass(frozen=True)
class SyncSettings:
    """``tools`` is None when the document says ``all``."""

    auto_sync: bool = True
    interval_minutes: int = 0
    tools: Optional[Tuple[str, ...]] = None
    override_mode: OverrideMode = "ask"


@dataclass(frozen=True)
class LogSettings:
    level: str = "info"


@dataclass(frozen=True)
class Settings:
    """The global settings document after merging over defaults."""

    repository: RepositorySettings = field(default_factory=RepositorySettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    log: LogSettings = field(default_factory=LogSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Settings":
        merged = merge_sections(DEFAULT_SETTINGS, data)
        repo = merged["repository"]
        sync = merged["sync"]
        log = merged["log"]

        auth = _as_str(repo.get("auth")) or "ssh"
        override_mode = _as_str(sync.get("overrideMode")) or "ask"
        level = (_as_str(log.get("level")) or "info").lower()
        raw_tools = sync.get("tools")
        tools = tuple(_as_str_list(raw_tools)) if isinstance(raw_tools, list) else None

        return cls(
            repository=RepositorySettings(
                url=(_as_str(repo.get("url")) or "").strip(),
                branch=_as_str(repo.get("branch")) or "main",
                auth=auth if auth in _AUTH_METHODS else "ssh",
            ),
            sync=SyncSettings(
                auto_sync=_as_bool(sync.get("autoSync"), default=True),
                interval_minutes=max(_as_int(sync.get("intervalMinutes")) or 0, 0),
                tools=tools,
                override_mode=override_mode if override_mode in OVERRIDE_MODES else "ask",  # type: ignore[arg-type]
            ),
            log=LogSettings(level=level if level in _LOG_LEVELS else "info"),
        )

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            "repository": {
                "url": self.repository.url,
                "branch": self.repository.branch,
                "auth": self.repository.auth,
            },
            "sync": {
                "autoSync": self.sync.auto_sync,
                "intervalMinutes": self.sync.interval_minutes,
                "tools": list(self.sync.tools) if self.sync.tools is not None else "all",
                "overrideMode": self.sync.override_mode,
            },
            "log": {"level": self.log.level},
        }


@dataclass(frozen=True)
class ProjectProfile:
    """Per-project overrides read from ``<project>/.dotai/profile.yaml``."""

    profile: str
    repository: Optional[Mapping[str, str]] = None
    tools: Tuple[str, ...] = ()
    overrides: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Any) -> "ProjectProfile":
        if not isinstance(data, Mapping):
            raise ConfigError("profile.yaml must contain a mapping at the root")
        repo_data = _as_dict(data.get("repository"))
        repository: Optional[Dict[str, str]] = None
        if repo_data:
            repository = {
                key: str(repo_data[key])
                for key in ("url", "branch")
                if _as_str(repo_data.get(key))
            }
        overrides = {
            str(key): str(value)
            for key, value in _as_dict(data.get("overrides")).items()
            if _as_str(value) is not None
        }
        return cls(
            profile=_as_str(data.get("profile")) or "default",
            repository=repository or None,
            tools=tuple(_as_str_list(data.get("tools"))),
            overrides=overrides,
        )


@dataclass(frozen=True)
class ConfigSources:
    user: Path
    project: Optional[Path]


@dataclass(frozen=True)
class ResolvedConfig:
    """Effective configuration for one invocation. Replaced wholesale on reload."""

    settings: Settings
    project_profile: Optional[ProjectProfile]
    effective_tools: Tuple[str, ...]
    repo_local_path: Path
    config_sources: ConfigSources


def repo_cache_path(repo_url: str, home: Path | None = None) -> Path:
    """Map a repository URL to its mirror directory under ``~/.dotai/cache``."""
    digest = hashlib.sha256(repo_url.encode("utf-8")).hexdigest()[:16]
    return dotai_home(home) / "cache" / digest


def default_settings_path(home: Path | None = None) -> Path:
    return dotai_home(home) / SETTINGS_FILENAME


class ConfigResolver:
    """Loads the global settings and the optional project profile."""

    def __init__(self, settings_path: Path | str | None = None, *, home: Path | None = None) -> None:
        self._home = home
        self.settings_path = Path(settings_path) if settings_path else default_settings_path(home)

    def resolve(self, project_path: Path | str) -> ResolvedConfig:
        project = Path(project_path).expanduser().resolve()
        settings = self.load_settings()
        profile = self.load_project_profile(project)
        effective = self._apply_profile_repository(settings, profile)
        profile_dir = project / PROFILE_DIRNAME
        return ResolvedConfig(
            settings=effective,
            project_profile=profile,
            effective_tools=_effective_tools(effective, profile),
            repo_local_path=repo_cache_path(effective.repository.url, self._home),
            config_sources=ConfigSources(
                user=self.settings_path.parent,
                project=profile_dir if profile_dir.is_dir() else None,
            ),
        )

    def resolve_with_overrides(
        self, project_path: Path | str, overrides: Mapping[str, Any]
    ) -> ResolvedConfig:
        """Resolve, then merge ``overrides`` section by section on top."""
        base = self.resolve(project_path)
        merged = Settings.from_mapping(merge_sections(base.settings.to_dict(), overrides))
        return replace(
            base,
            settings=merged,
            effective_tools=_effective_tools(merged, base.project_profile),
            repo_local_path=repo_cache_path(merged.repository.url, self._home),
        )

    def load_settings(self) -> Settings:
        return Settings.from_mapping(read_yaml_mapping(self.settings_path))

    def load_project_profile(self, project_path: Path) -> Optional[ProjectProfile]:
        profile_path = project_path / PROFILE_DIRNAME / PROFILE_FILENAME
        if not profile_path.is_file():
            return None
        data = read_yaml_mapping(profile_path)
        if not data:
            return None
        return ProjectProfile.from_mapping(data)

    @staticmethod
    def _apply_profile_repository(
        settings: Settings, profile: Optional[ProjectProfile]
    ) -> Settings:
        if profile is None or not profile.repository:
            return settings
        return replace(
            settings,
            repository=replace(
                settings.repository,
                url=profile.repository.get("url", settings.repository.url),
                branch=profile.repository.get("branch", settings.repository.branch),
            ),
        )


class ConfigWriter:
    """Persists settings with section-level merge and atomic replacement."""

    def __init__(
        self,
        settings_path: Path | str | None = None,
        *,
        home: Path | None = None,
        writer: AtomicFileWriter | None = None,
    ) -> None:
        self.settings_path = Path(settings_path) if settings_path else default_settings_path(home)
        self._writer = writer or AtomicFileWriter()

    def write_settings(self, settings: Settings | Mapping[str, Any]) -> str:
        """Replace the whole document. Returns the digest of what was written."""
        data = settings.to_dict() if isinstance(settings, Settings) else dict(settings)
        return self._write(data)

    def update_settings(self, partial: Mapping[str, Any]) -> str:
        """Merge ``partial`` into the on-disk document, keeping sibling sections."""
        existing = read_yaml_mapping(self.settings_path)
        return self._write(merge_sections(existing, partial, sections_only=False))

    def render(self, data: Mapping[str, Any]) -> str:
        header = f"# DotAI configuration - {self.settings_path}"
        body = yaml.safe_dump(
            dict(data), sort_keys=False, default_flow_style=False, allow_unicode=True, width=120
        )
        return f"{header}\n\n{body}"

    def _write(self, data: Mapping[str, Any]) -> str:
        content = self.render(data)
        self._writer.write(self.settings_path, content)
        logger.debug("Wrote settings to %s", self.settings_path)
        return hashlib.sha256(content.encode("utf-8")).hexdigest()


def read_yaml_mapping(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping; missing, empty or malformed files yield ``{}``."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return {}
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        logger.warning("Ignoring malformed YAML in %s: %s", path, exc)
        return {}
    return loaded if isinstance(loaded, dict) else {}


def merge_sections(
    base: Mapping[str, Any],
    overrides: Mapping[str, Any],
    *,
    sections_only: bool = True,
) -> Dict[str, Any]:
    """Merge each known section independently; present keys in ``overrides`` win.

    With ``sections_only`` unset, unknown top-level keys of ``base`` are kept.
    """
    result: Dict[str, Any] = {} if sections_only else copy.deepcopy(dict(base))
    for section in SECTIONS:
        merged = dict(_as_dict(base.get(section)))
        merged.update(_as_dict(overrides.get(section)))
        if merged or section in base or section in overrides or sections_only:
            result[section] = merged
    return result


def _effective_tools(settings: Settings, profile: Optional[ProjectProfile]) -> Tuple[str, ...]:
    if profile is not None and profile.tools:
        return profile.tools
    if settings.sync.tools is not None:
        return settings.sync.tools
    return ()


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return default


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item).strip() for item in value if isinstance(item, (str, int)) and str(item).strip()]
    return []


__all__ = [
    "ConfigResolver",
    "ConfigSources",
    "ConfigWriter",
    "DEFAULT_SETTINGS",
    "LogSettings",
    "ProjectProfile",
    "RepositorySettings",
    "ResolvedConfig",
    "Settings",
    "SyncSettings",
    "default_settings_path",
    "merge_sections",
    "read_yaml_mapping",
    "repo_cache_path",
]
