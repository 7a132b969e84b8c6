"""Workspace lifecycle: create worktrees, archive them and open them externally."""

from __future__ import annotations

import logging as py_logging
import shutil
import subprocess
import sys
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from treehouse.config import Preferences
from treehouse.constants import ARCHIVE_DIR_NAME, ARCHIVE_TIMESTAMP_FORMAT, DEFAULT_REMOTE, DEFAULT_START_POINT
from treehouse.errors import ExitCode, GitError, GitErrorKind, TreehouseError, WorkspaceError, WorkspaceErrorKind
from treehouse.git.service import GitService
from treehouse.security import command_for_log
from treehouse.workspace.models import Workspace, WorkspaceRepository
from treehouse.workspace.naming import CityNameGenerator

logger = py_logging.getLogger(__name__)


class ExternalEditor(str, Enum):
    CURSOR = "Cursor"
    ZED = "Zed"
    VSCODE = "VS Code"
    ITERM2 = "iTerm2"
    TERMINAL = "Terminal"
    FINDER = "Finder"

    @property
    def bundle_identifier(self) -> str:
        return _BUNDLE_IDENTIFIERS[self]


_BUNDLE_IDENTIFIERS = {
    ExternalEditor.CURSOR: "com.todesktop.230313mzl4w4u92",
    ExternalEditor.ZED: "dev.zed.Zed",
    ExternalEditor.VSCODE: "com.microsoft.VSCode",
    ExternalEditor.ITERM2: "com.googlecode.iterm2",
    ExternalEditor.TERMINAL: "com.apple.Terminal",
    ExternalEditor.FINDER: "com.apple.finder",
}

AppResolver = Callable[[str], "Path | None"]
Launcher = Callable[[list[str]], int]
Clock = Callable[[], datetime]


def resolve_app_with_mdfind(bundle_identifier: str) -> Path | None:
    if sys.platform != "darwin":
        return None
    try:
        result = subprocess.run(
            ["mdfind", f"kMDItemCFBundleIdentifier == '{bundle_identifier}'"],
            capture_output=True,
            text=True,
            check=False,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("mdfind unavailable bundle=%s error=%s", bundle_identifier, exc)
        return None
    for line in result.stdout.splitlines():
        candidate = line.strip()
        if candidate.endswith(".app"):
            return Path(candidate)
    return None


def launch_detached(args: list[str]) -> int:
    logger.debug("Launching command=%s", command_for_log(args))
    try:
        completed = subprocess.run(args, check=False, capture_output=True, text=True)
    except OSError as exc:
        logger.error("Launch failed command=%s error=%s", command_for_log(args), exc)
        return 127
    return completed.returncode


def workspace_slug(name: str) -> str:
    return name.lower().replace(" ", "-")


def archive_name(directory_name: str, now: datetime) -> str:
    return f"{directory_name}-{now.strftime(ARCHIVE_TIMESTAMP_FORMAT)}"


def existing_workspace_names(root: Path) -> list[str]:
    if not root.exists():
        return []
    return sorted(
        entry.name for entry in root.iterdir() if entry.is_dir() and not entry.name.startswith(".")
    )


class WorkspaceManager:
    def __init__(
        self,
        git: GitService | None = None,
        name_generator: CityNameGenerator | None = None,
        *,
        app_resolver: AppResolver | None = None,
        launcher: Launcher | None = None,
        applications_dir: Path = Path("/Applications"),
        clock: Clock | None = None,
    ) -> None:
        self.git = git or GitService()
        self.name_generator = name_generator or CityNameGenerator()
        self._app_resolver = app_resolver or resolve_app_with_mdfind
        self._launcher = launcher or launch_detached
        self._applications_dir = applications_dir
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def create_workspace(self, source_repo: str | Path, preferences: Preferences) -> Workspace:
        source = Path(source_repo).expanduser()
        if not source.exists():
            raise WorkspaceError.of(
                WorkspaceErrorKind.SOURCE_REPO_NOT_FOUND,
                str(source),
                hint="Pass the path of an existing git repository.",
            )
        if not await self.git.is_repository(source):
            raise GitError.of(GitErrorKind.NOT_A_REPOSITORY, str(source))

        root = preferences.root_path
        name = self.name_generator.generate_unique_name(
            excluding=preferences.recently_used_names,
            existing=existing_workspace_names(root),
        )
        slug = workspace_slug(name)
        worktree_path = root / slug
        branch = f"{preferences.branch_name_prefix}/{slug}"

        start_point: str | None = None
        if await self.git.has_remote(source, DEFAULT_REMOTE):
            try:
                await self.git.fetch(source, DEFAULT_REMOTE)
            except GitError as exc:
                logger.warning("git fetch failed repo=%s error=%s; continuing", source, exc.message)
            start_point = DEFAULT_START_POINT

        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorkspaceError.of(WorkspaceErrorKind.FAILED_TO_CREATE_DIRECTORY, f"{root}: {exc}") from exc

        await self.git.create_worktree(source, worktree_path, branch, start_point)
        repository = WorkspaceRepository(
            source_repo_path=source,
            worktree_path=worktree_path,
            branch_name=branch,
        )
        logger.info("Workspace created name=%s branch=%s path=%s", name, branch, worktree_path)
        return Workspace.with_repository(name, repository)

    async def delete_workspace(self, workspace: Workspace, preferences: Preferences) -> Path | None:
        """Move the worktree directory into the archive and let git forget it.

        The directory is moved, never deleted, so uncommitted files survive
        under ``.archived/``. Returns the archive path, or ``None`` when the
        directory was already gone.
        """
        primary = workspace.primary_repository
        if primary is None:
            raise WorkspaceError.of(WorkspaceErrorKind.NO_ROOT_PATH, workspace.effective_name)

        worktree_path = primary.worktree_path
        source = primary.source_repo_path
        await self.git.prune_worktrees(source)

        destination: Path | None = None
        if worktree_path.exists():
            archive_root = preferences.root_path / ARCHIVE_DIR_NAME
            try:
                archive_root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise WorkspaceError.of(
                    WorkspaceErrorKind.FAILED_TO_CREATE_DIRECTORY, f"{archive_root}: {exc}"
                ) from exc
            destination = archive_root / archive_name(worktree_path.name, self._clock())
            try:
                shutil.move(str(worktree_path), str(destination))
            except OSError as exc:
                raise TreehouseError(
                    f"Failed to archive workspace directory: {worktree_path}",
                    code=ExitCode.RUNTIME_ERROR,
                    hint=str(exc) or "Check permissions on the workspace root.",
                ) from exc
            logger.info("Workspace archived name=%s destination=%s", workspace.name, destination)

        await self.git.prune_worktrees(source)
        return destination

    def open_in_editor(self, workspace: Workspace, editor: ExternalEditor | str) -> Path:
        root = workspace.root_path
        if root is None:
            raise WorkspaceError.of(WorkspaceErrorKind.NO_ROOT_PATH, workspace.effective_name)
        resolved_editor = ExternalEditor(editor)

        app = self._app_resolver(resolved_editor.bundle_identifier)
        if app is None:
            fallback = self._applications_dir / f"{resolved_editor.value}.app"
            if fallback.exists():
                app = fallback
        if app is None:
            raise WorkspaceError.of(
                WorkspaceErrorKind.FAILED_TO_OPEN_EDITOR,
                f"Could not find {resolved_editor.value}",
                hint="Install the application or choose another editor.",
            )

        code = self._launcher(["open", "-a", str(app), str(root)])
        if code != 0:
            raise WorkspaceError.of(
                WorkspaceErrorKind.FAILED_TO_OPEN_EDITOR,
                f"{resolved_editor.value} exited with code {code}",
            )
        logger.info("Opened workspace name=%s editor=%s", workspace.name, resolved_editor.value)
        return app
