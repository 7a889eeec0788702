"""CLI entrypoints for dotai commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ConfigWriter, default_settings_path
from .engine import DotAIEngine, create_engine
from .errors import DotAIError
from .logging import configure_logging
from .models import SyncOptions, SyncReport


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_project_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project",
        default=None,
        help="Project root for project-scoped files (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dotai",
        description="Sync AI tool configuration from a Git repository.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the settings file (defaults to ~/.dotai/settings.yaml).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Write the repository settings.")
    _add_verbose_option(init_parser, suppress_default=True)
    init_parser.add_argument("--repo", required=True, help="URL of the configuration repository.")
    init_parser.add_argument("--branch", default="main", help="Branch to track.")
    init_parser.add_argument(
        "--auth", choices=("ssh", "https"), default="ssh", help="Authentication method."
    )
    init_parser.add_argument(
        "--tools",
        default=None,
        help="Comma-separated tool ids to sync (defaults to all).",
    )

    sync_parser = subparsers.add_parser("sync", help="Deploy configuration files to tools.")
    _add_verbose_option(sync_parser, suppress_default=True)
    _add_project_option(sync_parser)
    selection = sync_parser.add_mutually_exclusive_group()
    selection.add_argument("--tool", default=None, help="Comma-separated tool ids to sync.")
    selection.add_argument(
        "--all", action="store_true", help="Sync every registered tool, ignoring configured tools."
    )
    sync_parser.add_argument(
        "--scope", choices=("all", "user", "project"), default="all", help="Scopes to deploy."
    )
    sync_parser.add_argument(
        "--dry-run", action="store_true", help="Report what would be deployed without writing."
    )
    sync_parser.add_argument(
        "--force", action="store_true", help="Overwrite existing files regardless of overrideMode."
    )
    sync_parser.add_argument("--branch", default=None, help="Branch to pull instead of the configured one.")
    pin = sync_parser.add_mutually_exclusive_group()
    pin.add_argument("--tag", default=None, help="Deploy the files at this tag.")
    pin.add_argument("--commit", default=None, help="Deploy the files at this commit.")

    for name, help_text in (
        ("status", "Show repository and tool status."),
        ("detect", "Detect installed tools."),
        ("diff", "Show files that differ between the repository and this machine."),
        ("validate", "Validate repository files against tool rules."),
    ):
        command_parser = subparsers.add_parser(name, help=help_text)
        _add_verbose_option(command_parser, suppress_default=True)
        if name in ("diff", "validate"):
            _add_project_option(command_parser)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for dotai commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    verbose = bool(args.verbose)
    configure_logging(verbose=verbose)
    config_path = Path(args.config).expanduser() if args.config else None

    if args.command == "init":
        _run_init(args, config_path)
        return
    if args.command == "serve":
        from .service.app import run_service

        run_service(host=args.host, port=args.port, config_path=config_path)
        return

    overrides = {"log": {"level": "debug"}} if verbose else None
    try:
        engine = create_engine(config_path, getattr(args, "project", None), overrides)
    except DotAIError as exc:
        parser.exit(1, f"dotai: {exc}\n")

    with engine:
        try:
            exit_code = _dispatch(args, engine)
        except DotAIError as exc:
            parser.exit(1, f"dotai {args.command} failed: {exc}\n")
        except Exception as exc:  # pragma: no cover - defensive guard
            parser.exit(
                1, f"dotai {args.command} failed: {exc}\nRun with --verbose for more details.\n"
            )
    if exit_code:
        sys.exit(exit_code)


def _dispatch(args: argparse.Namespace, engine: DotAIEngine) -> int:
    if args.command == "sync":
        return _run_sync(args, engine)
    if args.command == "status":
        _print_status(engine)
        return 0
    if args.command == "detect":
        for tool in engine.detect_tools().tools:
            marker = "installed" if tool.installed else f"not installed ({tool.reason})"
            print(f"{tool.tool_id:<12} {tool.display_name:<16} {marker}")
        return 0
    if args.command == "diff":
        report = engine.diff()
        if not report.has_changes:
            print("No changes.")
            return 0
        for change in report.changes:
            print(f"{change.status:<9} {change.tool:<12} {change.file}")
        return 0
    if args.command == "validate":
        validation = engine.validate()
        if validation.valid:
            print("All files valid.")
            return 0
        for entry in validation.results:
            print(f"{entry.tool}: {entry.file}: {'; '.join(entry.errors)}")
        return 1
    raise DotAIError(f"Unknown command: {args.command}")  # pragma: no cover


def _run_init(args: argparse.Namespace, config_path: Optional[Path]) -> None:
    writer = ConfigWriter(config_path or default_settings_path())
    partial: Dict[str, Any] = {
        "repository": {"url": args.repo, "branch": args.branch, "auth": args.auth}
    }
    tools = _split_tools(args.tools)
    if tools:
        partial["sync"] = {"tools": tools}
    writer.update_settings(partial)
    print(f"Settings written to {writer.settings_path}")


def _run_sync(args: argparse.Namespace, engine: DotAIEngine) -> int:
    if args.all:
        tools: Optional[List[str]] = engine.registry.tool_ids()
    else:
        tools = _split_tools(args.tool) or None
    options = SyncOptions(
        tools=tools,
        scope=args.scope,
        dry_run=bool(args.dry_run),
        force=bool(args.force),
        branch=args.branch,
        tag=args.tag,
        commit=args.commit,
    )

    if engine.config.settings.sync.override_mode == "ask" and not (options.force or options.dry_run):
        items = engine.preview(options)
        print(f"Planned changes ({len(items)} file(s)):")
        for item in items:
            print(f"  {item.action:<9} {item.target_path}")

    report = engine.sync(options)
    _print_report(report, dry_run=options.dry_run)
    return 0 if report.success else 1


def _print_report(report: SyncReport, *, dry_run: bool) -> None:
    suffix = " (dry-run)" if dry_run else ""
    for result in report.results:
        line = f"{result.tool:<12} {result.status:<8} deployed={result.files_deployed} skipped={result.files_skipped}"
        if result.reason:
            line += f" ({result.reason})"
        print(line)
    for error in report.errors:
        print(f"error: {error.tool}: {error.file or '-'}: {error.error}")
    verdict = "succeeded" if report.success else "finished with errors"
    print(f"Sync {verdict}: {report.total_files} file(s){suffix}")


def _print_status(engine: DotAIEngine) -> None:
    report = engine.status()
    repo = report.repo
    print(f"Repository: {engine.config.settings.repository.url or '<not configured>'}")
    print(f"  mirror:  {repo.cache_path}")
    print(f"  local:   {repo.local_commit or '-'}")
    print(f"  remote:  {repo.remote_commit or '-'}{' (offline)' if repo.is_offline else ''}")
    for tool in report.tools:
        synced = tool.last_sync_time.isoformat() if tool.last_sync_time else "never"
        state = "installed" if tool.installed else "missing"
        print(f"{tool.tool_id:<12} {state:<9} last sync: {synced}")


def _split_tools(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


if __name__ == "__main__":
    main(sys.argv[1:])
