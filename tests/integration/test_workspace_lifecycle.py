from __future__ import annotations

import asyncio
import random
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path

import pytest

from treehouse.config import Preferences
from treehouse.git.service import GitService
from treehouse.workspace.manager import WorkspaceManager
from treehouse.workspace.naming import CityNameGenerator

pytestmark = [
    pytest.mark.integration,
    pytest.mark.slow,
    pytest.mark.critical_regression,
    pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed"),
]


def _git(repo: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", "-C", str(repo), *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


def _init_repo(path: Path) -> Path:
    path.mkdir(parents=True)
    _git(path, "init", "-q", "-b", "main")
    _git(path, "config", "user.email", "dev@example.com")
    _git(path, "config", "user.name", "Dev")
    (path / "README.md").write_text("hello\n", encoding="utf-8")
    _git(path, "add", "README.md")
    _git(path, "commit", "-q", "-m", "initial")
    return path


def _manager() -> WorkspaceManager:
    return WorkspaceManager(
        GitService(),
        CityNameGenerator(("Tokyo",), rng=random.Random(0)),
        clock=lambda: datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )


def test_create_workspace_adds_worktree_on_prefixed_branch(tmp_path: Path) -> None:
    source = _init_repo(tmp_path / "app")
    prefs = Preferences(root_directory=str(tmp_path / "root"))

    workspace = asyncio.run(_manager().create_workspace(source, prefs))

    worktree = tmp_path / "root" / "tokyo"
    assert workspace.root_path == worktree
    assert (worktree / "README.md").read_text(encoding="utf-8") == "hello\n"
    assert _git(worktree, "rev-parse", "--abbrev-ref", "HEAD").strip() == "treehouse/tokyo"
    entries = asyncio.run(GitService().list_worktrees(source))
    assert worktree.resolve() in {entry.path.resolve() for entry in entries}


def test_status_and_diff_stats_count_untracked_lines(tmp_path: Path) -> None:
    source = _init_repo(tmp_path / "app")
    (source / "README.md").write_text("hello\nworld\n", encoding="utf-8")
    (source / "notes.txt").write_text("a\nb\nc\n", encoding="utf-8")
    service = GitService()

    status = asyncio.run(service.status(source))
    stats = asyncio.run(service.diff_stats(source))

    assert status.branch == "main"
    assert {change.path for change in status.unstaged_changes} == {"README.md", "notes.txt"}
    assert (stats.additions, stats.deletions) == (4, 0)


def test_delete_workspace_archives_uncommitted_work_and_keeps_branch(tmp_path: Path) -> None:
    source = _init_repo(tmp_path / "app")
    prefs = Preferences(root_directory=str(tmp_path / "root"))
    manager = _manager()
    workspace = asyncio.run(manager.create_workspace(source, prefs))
    worktree = tmp_path / "root" / "tokyo"
    (worktree / "uncommitted.txt").write_text("draft\n", encoding="utf-8")

    archived = asyncio.run(manager.delete_workspace(workspace, prefs))

    assert archived == tmp_path / "root" / ".archived" / "tokyo-20250102T030405"
    assert (archived / "uncommitted.txt").read_text(encoding="utf-8") == "draft\n"
    assert not worktree.exists()
    listed = _git(source, "worktree", "list", "--porcelain")
    assert str(worktree.resolve()) not in listed
    assert str(worktree) not in listed
    assert "treehouse/tokyo" in _git(source, "branch", "--list", "treehouse/tokyo")


def test_recreating_workspace_attaches_existing_branch(tmp_path: Path) -> None:
    source = _init_repo(tmp_path / "app")
    prefs = Preferences(root_directory=str(tmp_path / "root"))
    manager = _manager()
    first = asyncio.run(manager.create_workspace(source, prefs))
    asyncio.run(manager.delete_workspace(first, prefs))

    second = asyncio.run(manager.create_workspace(source, prefs))

    assert second.current_branch == "treehouse/tokyo"
    assert second.root_path is not None and second.root_path.exists()
