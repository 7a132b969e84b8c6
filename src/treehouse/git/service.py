"""Git worktree, status and diff operations backed by the git CLI."""

from __future__ import annotations

import logging as py_logging
import re
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from treehouse.constants import DEFAULT_REMOTE
from treehouse.errors import GitError, GitErrorKind
from treehouse.git.runner import CommandResult, CommandRunner, run_command
from treehouse.security import truncate_log

logger = py_logging.getLogger(__name__)

_INSERTIONS_PATTERN = re.compile(r"(\d+) insertions?\(\+\)")
_DELETIONS_PATTERN = re.compile(r"(\d+) deletions?\(-\)")
_DIFF_BASES = ("origin/main", "origin/master")


class FileChangeStatus(str, Enum):
    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"
    RENAMED = "R"
    COPIED = "C"
    UNTRACKED = "?"
    IGNORED = "!"

    @property
    def display_name(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class GitFileChange:
    path: str
    status: FileChangeStatus
    staged: bool


@dataclass(frozen=True)
class GitStatus:
    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    changes: list[GitFileChange] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.changes

    @property
    def staged_changes(self) -> list[GitFileChange]:
        return [change for change in self.changes if change.staged]

    @property
    def unstaged_changes(self) -> list[GitFileChange]:
        return [change for change in self.changes if not change.staged]


@dataclass(frozen=True)
class GitDiffStats:
    additions: int = 0
    deletions: int = 0

    @property
    def has_changes(self) -> bool:
        return self.additions > 0 or self.deletions > 0


@dataclass(frozen=True)
class WorktreeEntry:
    path: Path
    head: str = ""
    branch: str = ""


def parse_porcelain_status(raw: str) -> list[GitFileChange]:
    changes: list[GitFileChange] = []
    for line in raw.splitlines():
        if len(line) < 4:
            continue
        index_status, worktree_status = line[0], line[1]
        path = line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        if index_status not in (" ", "?"):
            status = _parse_status_char(index_status)
            if status is not None:
                changes.append(GitFileChange(path=path, status=status, staged=True))
        if worktree_status != " ":
            status = _parse_status_char(worktree_status)
            if status is not None:
                changes.append(GitFileChange(path=path, status=status, staged=False))
    return changes


def parse_shortstat(raw: str) -> GitDiffStats:
    """Parse ``git diff --shortstat`` output such as `` 3 files changed, 14 insertions(+), 2 deletions(-)``."""
    insertions = _INSERTIONS_PATTERN.search(raw)
    deletions = _DELETIONS_PATTERN.search(raw)
    return GitDiffStats(
        additions=int(insertions.group(1)) if insertions else 0,
        deletions=int(deletions.group(1)) if deletions else 0,
    )


def parse_ahead_behind(raw: str) -> tuple[int, int]:
    parts = raw.split()
    if len(parts) < 2:
        return 0, 0
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return 0, 0


def parse_worktree_list(raw: str) -> list[WorktreeEntry]:
    entries: list[WorktreeEntry] = []
    current: dict[str, str] = {}
    for raw_line in [*raw.splitlines(), ""]:
        line = raw_line.strip()
        if not line:
            if current.get("worktree"):
                entries.append(
                    WorktreeEntry(
                        path=Path(current["worktree"]),
                        head=current.get("HEAD", ""),
                        branch=current.get("branch", "").removeprefix("refs/heads/"),
                    )
                )
            current = {}
            continue
        key, _, value = line.partition(" ")
        current[key] = value.strip()
    return entries


def _parse_status_char(char: str) -> FileChangeStatus | None:
    try:
        return FileChangeStatus(char)
    except ValueError:
        return None


class GitService:
    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner: CommandRunner = runner or run_command

    async def _git(self, repo: Path, args: list[str]) -> CommandResult:
        return await self._runner(["git", "-C", str(repo), *args])

    async def is_repository(self, path: Path) -> bool:
        if not Path(path).exists():
            return False
        result = await self._git(path, ["rev-parse", "--git-dir"])
        return result.success

    async def branch_exists(self, repo: Path, branch: str) -> bool:
        result = await self._git(repo, ["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"])
        return result.success

    async def has_remote(self, repo: Path, name: str = DEFAULT_REMOTE) -> bool:
        result = await self._git(repo, ["remote"])
        if not result.success:
            return False
        return name in {line.strip() for line in result.stdout.splitlines()}

    async def fetch(self, repo: Path, remote: str = DEFAULT_REMOTE) -> None:
        result = await self._git(repo, ["fetch", remote])
        if not result.success:
            raise GitError.of(
                GitErrorKind.COMMAND_FAILED,
                truncate_log(result.stderr) or f"git fetch {remote}",
                hint="Check network access and remote credentials.",
            )

    async def create_worktree(
        self,
        source_repo: Path,
        destination: Path,
        branch: str,
        start_point: str | None = None,
    ) -> None:
        if await self.branch_exists(source_repo, branch):
            logger.info("Attaching worktree to existing branch=%s path=%s", branch, destination)
            args = ["worktree", "add", str(destination), branch]
        else:
            args = ["worktree", "add", "-b", branch, str(destination)]
            if start_point:
                args.append(start_point)
        result = await self._git(source_repo, args)
        if not result.success:
            logger.error(
                "git worktree add failed repo=%s branch=%s stderr=%s",
                source_repo,
                branch,
                truncate_log(result.stderr),
            )
            raise GitError.of(
                GitErrorKind.WORKTREE_CREATION_FAILED,
                truncate_log(result.stderr),
                hint="Check branch state and repository health.",
            )
        logger.info("Created worktree repo=%s branch=%s path=%s", source_repo, branch, destination)

    async def remove_worktree(self, path: Path, source_repo: Path) -> None:
        """Remove a worktree, deleting the directory directly if git refuses."""
        await self.prune_worktrees(source_repo)
        result = await self._git(source_repo, ["worktree", "remove", str(path), "--force"])
        if result.success:
            logger.debug("Removed worktree path=%s", path)
            return
        logger.warning(
            "git worktree remove failed path=%s stderr=%s; deleting directory",
            path,
            truncate_log(result.stderr),
        )
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Fallback worktree deletion failed path=%s error=%s", path, exc)

    async def prune_worktrees(self, source_repo: Path) -> None:
        result = await self._git(source_repo, ["worktree", "prune"])
        if not result.success:
            logger.warning("git worktree prune failed repo=%s stderr=%s", source_repo, truncate_log(result.stderr))

    async def list_worktrees(self, source_repo: Path) -> list[WorktreeEntry]:
        result = await self._git(source_repo, ["worktree", "list", "--porcelain"])
        if not result.success:
            return []
        return parse_worktree_list(result.stdout)

    async def current_branch(self, path: Path) -> str:
        result = await self._git(path, ["rev-parse", "--abbrev-ref", "HEAD"])
        if not result.success:
            raise GitError.of(GitErrorKind.COMMAND_FAILED, truncate_log(result.stderr))
        return result.stdout.strip()

    async def status(self, path: Path) -> GitStatus:
        try:
            branch = await self.current_branch(path)
        except GitError as exc:
            logger.warning("Status unavailable path=%s error=%s", path, exc.message)
            return GitStatus(branch="")

        upstream_result = await self._git(path, ["rev-parse", "--abbrev-ref", "@{upstream}"])
        upstream = upstream_result.stdout.strip() if upstream_result.success else None

        ahead = behind = 0
        if upstream:
            counts = await self._git(path, ["rev-list", "--left-right", "--count", "HEAD...@{upstream}"])
            if counts.success:
                ahead, behind = parse_ahead_behind(counts.stdout)

        status_result = await self._git(path, ["status", "--porcelain=v1"])
        changes = parse_porcelain_status(status_result.stdout) if status_result.success else []
        return GitStatus(
            branch=branch,
            upstream=upstream or None,
            ahead=ahead,
            behind=behind,
            changes=changes,
        )

    async def diff_stats(self, path: Path) -> GitDiffStats:
        base = await self._resolve_diff_base(path)
        compare_to = "HEAD"
        if base is not None:
            merge_base = await self._git(path, ["merge-base", base, "HEAD"])
            if merge_base.success and merge_base.stdout.strip():
                compare_to = merge_base.stdout.strip()

        diff = await self._git(path, ["diff", "--shortstat", compare_to])
        stats = parse_shortstat(diff.stdout) if diff.success else GitDiffStats()
        untracked = await self.count_untracked_lines(path)
        return GitDiffStats(additions=stats.additions + untracked, deletions=stats.deletions)

    async def count_untracked_lines(self, path: Path) -> int:
        listing = await self._git(path, ["ls-files", "--others", "--exclude-standard"])
        if not listing.success:
            return 0
        total = 0
        for name in (line for line in listing.stdout.splitlines() if line.strip()):
            file_path = Path(path) / name
            if not file_path.is_file():
                continue
            counted = await self._runner(["wc", "-l", str(file_path)])
            if not counted.success:
                continue
            first = counted.stdout.strip().split(" ", 1)[0]
            if first.isdigit():
                total += int(first)
        return total

    async def remote_url(self, path: Path) -> str | None:
        result = await self._git(path, ["config", "--get", "remote.origin.url"])
        if not result.success:
            return None
        return result.stdout.strip() or None

    async def push_branch(self, path: Path, branch: str) -> None:
        result = await self._git(path, ["push", "--force-with-lease", "-u", DEFAULT_REMOTE, branch])
        if not result.success:
            raise GitError.of(
                GitErrorKind.COMMAND_FAILED,
                truncate_log(result.stderr),
                hint="Resolve the push rejection and retry.",
            )

    async def _resolve_diff_base(self, path: Path) -> str | None:
        for candidate in _DIFF_BASES:
            check = await self._git(path, ["rev-parse", "--verify", "--quiet", candidate])
            if check.success:
                return candidate
        return None
