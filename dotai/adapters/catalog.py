"""Built-in destination tools and where their files go."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Tuple

from ..models import DeployContext, Scope
from .managed import AdapterSpec, DetectSpec, ScopeSpec, TargetResolver

_DEFAULT_PATTERNS: Tuple[str, ...] = (
    "rules/**/*.md",
    "commands/**/*",
    "skills/**/*",
    "agents/**/*",
)

_VSCODE_EXTENSIONS = ".vscode/extensions"


def _base(scope: Scope, context: DeployContext) -> Path:
    return context.user_home if scope == "user" else context.project_path


def _under(scope: Scope, config_dir: str) -> TargetResolver:
    def resolve(context: DeployContext, relative: str) -> Path:
        return _base(scope, context) / config_dir / relative

    return resolve


def _at_root(scope: Scope) -> TargetResolver:
    def resolve(context: DeployContext, relative: str) -> Path:
        return _base(scope, context) / relative

    return resolve


def _claude_user(context: DeployContext, relative: str) -> Path:
    if relative == "CLAUDE.md":
        return context.user_home / ".claude" / relative
    return context.user_home / relative


def _cline_user_rules(context: DeployContext, relative: str) -> Path:
    rules = context.user_home / "Documents" / "Cline" / "Rules"
    prefix = ".clinerules/"
    if relative.startswith(prefix):
        return rules / relative[len(prefix):]
    return rules / Path(relative).name


def _rules_tool(tool_id: str, display_name: str, config_dir: str) -> AdapterSpec:
    return AdapterSpec(
        tool_id=tool_id,
        display_name=display_name,
        scopes={
            "user": ScopeSpec(_DEFAULT_PATTERNS, _under("user", config_dir)),
            "project": ScopeSpec(_DEFAULT_PATTERNS, _under("project", config_dir)),
        },
        detect=DetectSpec(
            home_dirs=(config_dir,),
            missing_reason=f"~/{config_dir}/ directory not found",
        ),
    )


def _rules_tool_with_root_file(
    tool_id: str, display_name: str, config_dir: str, root_file: str
) -> AdapterSpec:
    spec = _rules_tool(tool_id, display_name, config_dir)
    return AdapterSpec(
        tool_id=spec.tool_id,
        display_name=spec.display_name,
        scopes={
            "user": ScopeSpec((root_file, *_DEFAULT_PATTERNS), _under("user", config_dir)),
            "project": spec.scopes["project"],
        },
        detect=spec.detect,
    )


BUILTIN_SPECS: Tuple[AdapterSpec, ...] = (
    AdapterSpec(
        tool_id="cursor",
        display_name="Cursor",
        scopes={
            "user": ScopeSpec(
                ("rules/**/*.mdc", "commands/**/*", "skills/**/*", "agents/**/*"),
                _under("user", ".cursor"),
            ),
            "project": ScopeSpec(
                ("rules/**/*.mdc", "commands/**/*", "skills/**/*", "agents/**/*"),
                _under("project", ".cursor"),
            ),
        },
        detect=DetectSpec(home_dirs=(".cursor",), missing_reason="~/.cursor/ directory not found"),
    ),
    AdapterSpec(
        tool_id="claude",
        display_name="Claude Code",
        scopes={
            "user": ScopeSpec(("CLAUDE.md", ".claude/commands/**/*"), _claude_user),
            "project": ScopeSpec(
                ("CLAUDE.md", ".claude/commands/**/*"),
                _at_root("project"),
            ),
        },
        detect=DetectSpec(
            commands=("claude",),
            home_dirs=(".claude",),
            missing_reason="claude CLI not installed and ~/.claude/ not found",
        ),
    ),
    AdapterSpec(
        tool_id="copilot",
        display_name="GitHub Copilot",
        scopes={
            "project": ScopeSpec(
                ("copilot-instructions.md", "instructions/**/*.instructions.md"),
                _under("project", ".github"),
            ),
        },
        detect=DetectSpec(
            extension_dirs=(_VSCODE_EXTENSIONS, ".cursor/extensions", ".windsurf/extensions"),
            extension_prefix="github.copilot-",
            missing_reason="GitHub Copilot extension not found in VSCode, Cursor, or Windsurf",
        ),
    ),
    AdapterSpec(
        tool_id="windsurf",
        display_name="Windsurf",
        scopes={"project": ScopeSpec(("rules/**/*.md",), _under("project", ".windsurf"))},
        detect=DetectSpec(home_dirs=(".windsurf",), missing_reason="~/.windsurf/ directory not found"),
    ),
    AdapterSpec(
        tool_id="cline",
        display_name="Cline",
        scopes={
            "user": ScopeSpec((".clinerules/**/*.md",), _cline_user_rules),
            "project": ScopeSpec((".clinerules", ".clinerules/**/*.md"), _at_root("project")),
        },
        detect=DetectSpec(
            extension_dirs=(_VSCODE_EXTENSIONS,),
            extension_prefix="saoudrizwan.claude-dev-",
            missing_reason="Cline extension not installed",
        ),
    ),
    AdapterSpec(
        tool_id="roo",
        display_name="Roo Code",
        scopes={
            "user": ScopeSpec((".roo/rules/**/*", ".roo/rules-*/**/*"), _at_root("user")),
            "project": ScopeSpec(
                (
                    ".roo/rules/**/*",
                    ".roo/rules-*/**/*",
                    ".roorules",
                    ".roorules-*",
                    "AGENTS.md",
                    "AGENT.md",
                ),
                _at_root("project"),
            ),
        },
        detect=DetectSpec(
            extension_dirs=(_VSCODE_EXTENSIONS,),
            extension_prefix="rooveterinaryinc.roo-code-",
            home_dirs=(".roo",),
            missing_reason="Roo Code extension not installed and ~/.roo/ not found",
        ),
    ),
    AdapterSpec(
        tool_id="codex",
        display_name="Codex CLI",
        scopes={
            "user": ScopeSpec(("AGENTS.md", "AGENTS.override.md"), _under("user", ".codex")),
            "project": ScopeSpec(("AGENTS.md", "AGENTS.override.md"), _at_root("project")),
        },
        detect=DetectSpec(commands=("codex",), missing_reason="codex CLI not installed or not in PATH"),
    ),
    _rules_tool("qoder", "Qoder", ".qoder"),
    _rules_tool("codebuddy", "CodeBuddy", ".codebuddy"),
    _rules_tool("trae", "Trae", ".trae"),
    _rules_tool("lingma", "Lingma", ".lingma"),
    _rules_tool("antigravity", "Antigravity", ".antigravity"),
    _rules_tool_with_root_file("gemini", "Gemini", ".gemini", "GEMINI.md"),
    _rules_tool_with_root_file("iflow", "iFlow", ".iflow", "IFLOW.md"),
)

BUILTIN_TOOL_IDS: Tuple[str, ...] = tuple(spec.tool_id for spec in BUILTIN_SPECS)

SPECS_BY_ID: Mapping[str, AdapterSpec] = {spec.tool_id: spec for spec in BUILTIN_SPECS}


def spec_for(tool_id: str) -> AdapterSpec:
    try:
        return SPECS_BY_ID[tool_id]
    except KeyError:
        raise KeyError(f"Unknown built-in tool: {tool_id}") from None


__all__ = ["BUILTIN_SPECS", "BUILTIN_TOOL_IDS", "SPECS_BY_ID", "spec_for"]
