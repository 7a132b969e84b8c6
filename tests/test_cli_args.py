from __future__ import annotations

import argparse
from pathlib import Path

import pytest

from treehouse import cli
from treehouse.app_state import AppState
from treehouse.config import Preferences
from treehouse.errors import ExitCode
from treehouse.git.runner import CommandResult
from treehouse.git.service import GitService
from treehouse.terminal import PtyBackend, TerminalCache
from treehouse.workspace.models import Workspace, WorkspaceRepository


class _StatusRunner:
    async def __call__(self, args: list[str], *, cwd: Path | None = None) -> CommandResult:
        command = args[3:]
        if command == ["rev-parse", "--abbrev-ref", "HEAD"]:
            return CommandResult(0, "treehouse/tokyo\n")
        if command == ["status", "--porcelain=v1"]:
            return CommandResult(0, "M  a.py\n?? b.py\n")
        if command[:2] == ["diff", "--shortstat"]:
            return CommandResult(0, " 1 file changed, 3 insertions(+)\n")
        return CommandResult(1)


def _factory(tmp_path: Path, workspaces: list[Workspace] | None = None):
    def build(_namespace: argparse.Namespace) -> AppState:
        return AppState(
            Preferences(root_directory=str(tmp_path / "root")),
            preferences_path=tmp_path / "preferences.json",
            git=GitService(_StatusRunner()),
            terminal_cache=TerminalCache(backend=PtyBackend(spawn=lambda *_: object(), threaded=False)),
            workspaces=workspaces or [],
        )

    return build


def _workspace(tmp_path: Path) -> Workspace:
    repo = WorkspaceRepository(
        source_repo_path=tmp_path / "src",
        worktree_path=tmp_path / "root" / "tokyo",
        branch_name="treehouse/tokyo",
    )
    return Workspace.with_repository("Tokyo", repo)


def test_cli_help_lists_commands() -> None:
    help_text = cli.build_parser().format_help()

    for name in ("create", "delete", "list", "status", "open", "themes", "--root", "--log-level"):
        assert name in help_text


def test_invalid_log_level_returns_error_code() -> None:
    assert cli.main(["--log-level", "LOUD"]) != 0


def test_warning_alias_for_log_level_is_accepted(tmp_path: Path) -> None:
    assert cli.main(["--log-level", "warning", "list"], state_factory=_factory(tmp_path)) == 0


def test_no_command_lists_workspaces(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main([], state_factory=_factory(tmp_path, [_workspace(tmp_path)]))

    assert code == 0
    assert "Tokyo" in capsys.readouterr().out


def test_empty_list_message(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["list"], state_factory=_factory(tmp_path)) == 0
    assert "No workspaces." in capsys.readouterr().out


def test_status_prints_branch_and_diff(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["status", "tokyo"], state_factory=_factory(tmp_path, [_workspace(tmp_path)]))
    output = capsys.readouterr().out

    assert code == 0
    assert "Tokyo on treehouse/tokyo" in output
    assert "staged: 1  unstaged: 1" in output
    assert "+3 -0" in output


def test_unknown_workspace_is_reported_to_stderr(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["delete", "Paris"], state_factory=_factory(tmp_path))

    assert code == int(ExitCode.VALIDATION_ERROR)
    assert "Workspace not found: Paris" in capsys.readouterr().err


def test_create_rejects_missing_repository(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["create", str(tmp_path / "missing")], state_factory=_factory(tmp_path))

    assert code == int(ExitCode.VALIDATION_ERROR)
    assert "Source repository not found" in capsys.readouterr().err


def test_open_rejects_unknown_editor() -> None:
    assert cli.main(["open", "tokyo", "--editor", "Notepad"]) == int(ExitCode.INVALID_ARGS)


def test_themes_lists_builtins(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["themes"], state_factory=_factory(tmp_path)) == 0

    output = capsys.readouterr().out
    assert "* Light" in output
    assert "Dark" in output


def test_unexpected_failure_maps_to_runtime_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    def broken(_namespace: argparse.Namespace) -> AppState:
        raise RuntimeError("boom")

    code = cli.main(["--log-file", str(tmp_path / "cli.log"), "list"], state_factory=broken)

    assert code == int(ExitCode.RUNTIME_ERROR)
    assert "Inspect logs" in capsys.readouterr().err
