"""Tests for the built-in tool catalog."""

from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from dotai.adapters import (
    BUILTIN_TOOL_IDS,
    AdapterRegistry,
    ManagedToolAdapter,
    build_builtin_adapters,
    build_registry,
    spec_for,
)
from dotai.models import DeployContext
from tests._fixtures.mirror_builder import MirrorBuilder


def _targets(tool: str, scope: str, home: Path, project: Path, mirror: MirrorBuilder) -> List[Path]:
    adapter = ManagedToolAdapter(spec_for(tool), mirror.path(), home=home)
    context = DeployContext(project_path=project, user_home=home, platform="linux")
    return [mapping.target_path for mapping in adapter.get_path_mappings(scope, context)]  # type: ignore[arg-type]


def test_catalog_lists_fourteen_tools() -> None:
    assert BUILTIN_TOOL_IDS == (
        "cursor",
        "claude",
        "copilot",
        "windsurf",
        "cline",
        "roo",
        "codex",
        "qoder",
        "codebuddy",
        "trae",
        "lingma",
        "antigravity",
        "gemini",
        "iflow",
    )


def test_unknown_builtin_raises_key_error() -> None:
    with pytest.raises(KeyError):
        spec_for("vim")


def test_cursor_rules_land_in_dot_cursor(home: Path, project: Path, mirror: MirrorBuilder) -> None:
    mirror.write(
        {
            "cursor/user/rules/general.mdc": "rule",
            "cursor/user/rules/notes.md": "not a cursor rule",
            "cursor/project/commands/review.md": "cmd",
        }
    )

    assert _targets("cursor", "user", home, project, mirror) == [home / ".cursor" / "rules" / "general.mdc"]
    assert _targets("cursor", "project", home, project, mirror) == [
        project / ".cursor" / "commands" / "review.md"
    ]


def test_claude_memory_file_placement(home: Path, project: Path, mirror: MirrorBuilder) -> None:
    mirror.write(
        {
            "claude/user/CLAUDE.md": "user memory",
            "claude/user/.claude/commands/ship.md": "ship",
            "claude/project/CLAUDE.md": "project memory",
        }
    )

    assert _targets("claude", "user", home, project, mirror) == [
        home / ".claude" / "CLAUDE.md",
        home / ".claude" / "commands" / "ship.md",
    ]
    assert _targets("claude", "project", home, project, mirror) == [project / "CLAUDE.md"]


def test_copilot_is_project_only(home: Path, project: Path, mirror: MirrorBuilder) -> None:
    mirror.write(
        {
            "copilot/project/copilot-instructions.md": "x",
            "copilot/project/instructions/py.instructions.md": "y",
        }
    )
    adapter = ManagedToolAdapter(spec_for("copilot"), mirror.path(), home=home)

    assert adapter.supported_scopes == ("project",)
    assert _targets("copilot", "project", home, project, mirror) == [
        project / ".github" / "copilot-instructions.md",
        project / ".github" / "instructions" / "py.instructions.md",
    ]


def test_cline_user_rules_go_to_documents(home: Path, project: Path, mirror: MirrorBuilder) -> None:
    mirror.write({"cline/user/.clinerules/style.md": "x"})

    assert _targets("cline", "user", home, project, mirror) == [
        home / "Documents" / "Cline" / "Rules" / "style.md"
    ]


def test_codex_agents_file_placement(home: Path, project: Path, mirror: MirrorBuilder) -> None:
    mirror.write({"codex/user/AGENTS.md": "u", "codex/project/AGENTS.md": "p"})

    assert _targets("codex", "user", home, project, mirror) == [home / ".codex" / "AGENTS.md"]
    assert _targets("codex", "project", home, project, mirror) == [project / "AGENTS.md"]


def test_gemini_root_file_only_in_user_scope(home: Path, project: Path, mirror: MirrorBuilder) -> None:
    mirror.write(
        {
            "gemini/user/GEMINI.md": "u",
            "gemini/project/GEMINI.md": "ignored",
            "gemini/project/rules/a.md": "p",
        }
    )

    assert _targets("gemini", "user", home, project, mirror) == [home / ".gemini" / "GEMINI.md"]
    assert _targets("gemini", "project", home, project, mirror) == [project / ".gemini" / "rules" / "a.md"]


def test_copilot_detection_uses_extension_prefix(home: Path, mirror: MirrorBuilder) -> None:
    adapter = ManagedToolAdapter(spec_for("copilot"), mirror.path(), home=home)
    assert adapter.detect().installed is False

    (home / ".cursor" / "extensions" / "github.copilot-1.200.0").mkdir(parents=True)

    assert adapter.detect().installed is True


def test_builtin_adapters_share_mirror(mirror: MirrorBuilder) -> None:
    adapters = build_builtin_adapters(mirror.path())

    assert [adapter.tool_id for adapter in adapters] == list(BUILTIN_TOOL_IDS)


def test_build_registry_without_plugins(mirror: MirrorBuilder) -> None:
    registry = build_registry(mirror.path(), include_plugins=False)

    assert isinstance(registry, AdapterRegistry)
    assert registry.tool_ids() == list(BUILTIN_TOOL_IDS)
