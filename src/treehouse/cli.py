"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging as py_logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from .app_state import AppState
from .errors import ExitCode, TreehouseError, user_facing_error
from .git.service import GitDiffStats, GitStatus
from .logging import LOG_LEVELS, configure_logging, default_log_path, normalize_level
from .workspace.manager import ExternalEditor

_VALID_EDITORS = tuple(editor.value for editor in ExternalEditor)

StateFactory = Callable[[argparse.Namespace], AppState]


def _log_level_type(value: str) -> str:
    normalized = normalize_level(value)
    if normalized is None:
        accepted = ", ".join(LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="treehouse")
    parser.add_argument("--root", type=Path, default=None, help="Directory that holds workspaces")
    parser.add_argument("--preferences", type=Path, default=None, help="Preferences JSON file")
    parser.add_argument("--log-level", type=_log_level_type, default="INFO")
    parser.add_argument("--log-file", type=Path, default=None)

    commands = parser.add_subparsers(dest="command")
    create = commands.add_parser("create", help="Create a workspace from a git repository")
    create.add_argument("repo", type=Path)

    delete = commands.add_parser("delete", help="Archive a workspace")
    delete.add_argument("name")

    commands.add_parser("list", help="List workspaces")

    status = commands.add_parser("status", help="Show git status and diff stats of a workspace")
    status.add_argument("name")

    open_cmd = commands.add_parser("open", help="Open a workspace in an external application")
    open_cmd.add_argument("name")
    open_cmd.add_argument("--editor", choices=_VALID_EDITORS, default=None)

    commands.add_parser("themes", help="List available themes")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def load_state(namespace: argparse.Namespace) -> AppState:
    return AppState.load(namespace.preferences, root_directory=namespace.root)


def _cmd_create(state: AppState, namespace: argparse.Namespace) -> int:
    workspace = asyncio.run(state.create_workspace(namespace.repo))
    print(f"Created {workspace.name}")
    print(f"  branch: {workspace.current_branch}")
    print(f"  path:   {workspace.root_path}")
    return int(ExitCode.SUCCESS)


def _cmd_delete(state: AppState, namespace: argparse.Namespace) -> int:
    workspace = state.find_workspace(namespace.name)
    archived = asyncio.run(state.delete_workspace(workspace))
    if archived is None:
        print(f"Deleted {workspace.effective_name}")
    else:
        print(f"Archived {workspace.effective_name} to {archived}")
    return int(ExitCode.SUCCESS)


def _cmd_list(state: AppState, _namespace: argparse.Namespace) -> int:
    workspaces = state.sorted_workspaces
    if not workspaces:
        print("No workspaces.")
        return int(ExitCode.SUCCESS)
    for workspace in workspaces:
        marker = "*" if workspace.id == state.selected_workspace_id else " "
        print(f"{marker} {workspace.effective_name:<16} {workspace.current_branch or '-':<32} {workspace.root_path}")
    return int(ExitCode.SUCCESS)


def _cmd_status(state: AppState, namespace: argparse.Namespace) -> int:
    workspace = state.find_workspace(namespace.name)
    root = workspace.root_path
    if root is None:
        print(f"{workspace.effective_name}: no repository")
        return int(ExitCode.SUCCESS)

    async def collect() -> tuple[GitStatus, GitDiffStats]:
        return await state.git.status(root), await state.git.diff_stats(root)

    status, stats = asyncio.run(collect())
    print(f"{workspace.effective_name} on {status.branch or '?'}")
    if status.upstream:
        print(f"  upstream: {status.upstream} (ahead {status.ahead}, behind {status.behind})")
    print(f"  staged: {len(status.staged_changes)}  unstaged: {len(status.unstaged_changes)}")
    print(f"  diff:   +{stats.additions} -{stats.deletions}")
    return int(ExitCode.SUCCESS)


def _cmd_open(state: AppState, namespace: argparse.Namespace) -> int:
    workspace = state.find_workspace(namespace.name)
    editor = namespace.editor or state.preferences.preferred_editor
    app = state.manager.open_in_editor(workspace, editor)
    print(f"Opened {workspace.effective_name} with {app}")
    return int(ExitCode.SUCCESS)


def _cmd_themes(state: AppState, _namespace: argparse.Namespace) -> int:
    current = state.theme_manager.current_theme
    for theme in state.theme_manager.all_themes:
        marker = "*" if theme.id == current.id else " "
        kind = "built-in" if theme.is_built_in else "custom"
        print(f"{marker} {theme.name:<20} {kind:<9} {theme.central_terminal_background}")
    return int(ExitCode.SUCCESS)


_COMMANDS: dict[str, Callable[[AppState, argparse.Namespace], int]] = {
    "create": _cmd_create,
    "delete": _cmd_delete,
    "list": _cmd_list,
    "status": _cmd_status,
    "open": _cmd_open,
    "themes": _cmd_themes,
}


def run_cli_flow(namespace: argparse.Namespace, state_factory: StateFactory | None = None) -> int:
    state = (state_factory or load_state)(namespace)
    handler = _COMMANDS[namespace.command or "list"]
    return handler(state, namespace)


def main(
    argv: Sequence[str] | None = None,
    *,
    state_factory: StateFactory | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(level=namespace.log_level, log_file=log_path)

    try:
        logger.debug("Starting CLI flow command=%s", namespace.command or "list")
        return run_cli_flow(namespace, state_factory)
    except TreehouseError as exc:
        logger.error(
            "Handled TreehouseError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        hint = f"Inspect logs: {log_path}"
        print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
