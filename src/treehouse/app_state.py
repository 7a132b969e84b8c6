"""Application state: workspace list, selection, sessions and background refresh."""

from __future__ import annotations

import asyncio
import logging as py_logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import Any

from treehouse.config import Preferences, load_preferences, save_preferences
from treehouse.constants import CODE_REVIEW_REFRESH_SECONDS, DIFF_STATS_REFRESH_SECONDS
from treehouse.errors import (
    HostingError,
    HostingErrorKind,
    TreehouseError,
    WorkspaceError,
    WorkspaceErrorKind,
)
from treehouse.git.service import GitDiffStats, GitService
from treehouse.hosting.base import CodeReview, HostingProvider, extract_project_path
from treehouse.hosting.factory import config_from_preferences, make_provider
from treehouse.session import TerminalSessionState, WorkspaceSessionState
from treehouse.terminal.assistant import AssistantSessions
from treehouse.terminal.cache import TerminalCache
from treehouse.terminal.pty_backend import TerminalHandle
from treehouse.theme import FontSettings, Theme, ThemeManager
from treehouse.workspace.manager import WorkspaceManager
from treehouse.workspace.models import Workspace, WorkspaceNavigationHistory, utcnow
from treehouse.workspace.storage import load_workspaces, save_workspaces

logger = py_logging.getLogger(__name__)


class AppState:
    def __init__(
        self,
        preferences: Preferences | None = None,
        *,
        preferences_path: str | Path | None = None,
        git: GitService | None = None,
        manager: WorkspaceManager | None = None,
        theme_manager: ThemeManager | None = None,
        terminal_cache: TerminalCache | None = None,
        hosting_provider: HostingProvider | None = None,
        workspaces: Iterable[Workspace] = (),
    ) -> None:
        self.preferences_path = preferences_path
        self.preferences = preferences or Preferences()
        self.git = git or GitService()
        self.manager = manager or WorkspaceManager(self.git)
        self.theme_manager = theme_manager or ThemeManager(
            custom_themes=self.preferences.themes(),
            selected_theme_id=self.preferences.selected_theme_uuid(),
            font=FontSettings(size=self.preferences.font_size, family=self.preferences.font_name),
        )
        self.terminal_cache = terminal_cache or TerminalCache(
            capacity=self.preferences.terminal_cache_capacity,
            shell=self.preferences.default_shell or None,
            assistant=AssistantSessions(binary=self.preferences.assistant_binary),
            theme_manager=self.theme_manager,
        )
        self.hosting_provider = hosting_provider
        if self.hosting_provider is None:
            config = config_from_preferences(self.preferences)
            if config.is_configured:
                self.hosting_provider = make_provider(config, git=self.git)

        self.workspaces: list[Workspace] = list(workspaces)
        self.selected_workspace_id: uuid.UUID | None = None
        self.navigation_history = WorkspaceNavigationHistory()
        self.session_states: dict[uuid.UUID, WorkspaceSessionState] = {}
        self._background_tasks: list[asyncio.Task[None]] = []
        self._workspace_tasks: dict[uuid.UUID, set[asyncio.Future[Any]]] = {}

    @classmethod
    def load(
        cls,
        preferences_path: str | Path | None = None,
        *,
        root_directory: str | Path | None = None,
        **kwargs: Any,
    ) -> AppState:
        preferences = load_preferences(preferences_path)
        if root_directory is not None:
            preferences.root_directory = str(Path(root_directory).expanduser())
        state = cls(
            preferences,
            preferences_path=preferences_path,
            workspaces=load_workspaces(preferences.root_path),
            **kwargs,
        )
        state._restore_selection()
        return state

    def save(self) -> None:
        self.save_workspaces()
        self.save_preferences()

    def save_workspaces(self) -> None:
        save_workspaces(self.workspaces, self.preferences.root_path)

    def save_preferences(self) -> None:
        try:
            save_preferences(self.preferences, self.preferences_path)
        except OSError as exc:
            logger.error("Failed to save preferences error=%s", exc)

    @property
    def selected_workspace(self) -> Workspace | None:
        return self.workspace(self.selected_workspace_id) if self.selected_workspace_id else None

    @property
    def sorted_workspaces(self) -> list[Workspace]:
        return sorted(self.workspaces, key=lambda item: item.sort_order)

    @property
    def can_navigate_back(self) -> bool:
        return self.navigation_history.can_go_back

    @property
    def can_navigate_forward(self) -> bool:
        return self.navigation_history.can_go_forward

    def workspace(self, workspace_id: uuid.UUID) -> Workspace | None:
        return next((item for item in self.workspaces if item.id == workspace_id), None)

    def find_workspace(self, name: str) -> Workspace:
        wanted = name.strip().casefold()
        for item in self.workspaces:
            if wanted in (item.name.casefold(), item.effective_name.casefold(), str(item.id)):
                return item
        raise WorkspaceError.of(WorkspaceErrorKind.WORKSPACE_NOT_FOUND, name, hint="Run `treehouse list`.")

    def select_workspace(self, workspace_id: uuid.UUID | None) -> None:
        if workspace_id is None or workspace_id == self.selected_workspace_id:
            return
        self.selected_workspace_id = workspace_id
        self.navigation_history.push(workspace_id)
        workspace = self.workspace(workspace_id)
        if workspace is not None:
            workspace.last_accessed_at = utcnow()
            self.save_workspaces()
        self.preferences.last_selected_workspace_id = str(workspace_id)
        self.terminal_cache.set_active_workspace(workspace_id)

    def navigate_back(self) -> uuid.UUID | None:
        return self._move_to(self.navigation_history.go_back())

    def navigate_forward(self) -> uuid.UUID | None:
        return self._move_to(self.navigation_history.go_forward())

    def session_state(self, workspace_id: uuid.UUID) -> WorkspaceSessionState:
        existing = self.session_states.get(workspace_id)
        if existing is not None:
            return existing
        state = WorkspaceSessionState(workspace_id, shell=self.preferences.default_shell or None)
        workspace = self.workspace(workspace_id)
        state.create_terminal(workspace.root_path if workspace else None)
        self.session_states[workspace_id] = state
        return state

    async def create_workspace(self, source_repo: str | Path) -> Workspace:
        workspace = await self.manager.create_workspace(source_repo, self.preferences)
        workspace.sort_order = len(self.workspaces)
        self.workspaces.append(workspace)
        self.preferences.add_used_name(workspace.name)
        self.preferences.add_recent_repository(Path(source_repo).expanduser())
        self.select_workspace(workspace.id)
        self.save()
        return workspace

    async def delete_workspace(self, workspace: Workspace) -> Path | None:
        # Archive first: a failed archive leaves the workspace listed and its terminals alive.
        archived = await self.manager.delete_workspace(workspace, self.preferences)

        self.workspaces = [item for item in self.workspaces if item.id != workspace.id]
        self.session_states.pop(workspace.id, None)
        self.navigation_history.remove(workspace.id)
        self.terminal_cache.remove_all_terminals(workspace.id)
        await self._cancel_workspace_tasks(workspace.id)

        if self.selected_workspace_id == workspace.id:
            remaining = self.sorted_workspaces
            self.selected_workspace_id = remaining[0].id if remaining else None
            self.preferences.last_selected_workspace_id = str(self.selected_workspace_id or "")
            self.terminal_cache.set_active_workspace(self.selected_workspace_id)

        for index, item in enumerate(self.sorted_workspaces):
            item.sort_order = index
        self.save()
        return archived

    def move_workspaces(self, indices: Iterable[int], destination: int) -> None:
        """Move the workspaces at ``indices`` of the sorted list so they land before ``destination``."""
        ordered = self.sorted_workspaces
        picked = sorted({index for index in indices if 0 <= index < len(ordered)})
        if not picked:
            return
        moving = [ordered[index] for index in picked]
        remaining = [item for index, item in enumerate(ordered) if index not in picked]
        insert_at = max(0, min(destination, len(ordered))) - sum(1 for index in picked if index < destination)
        reordered = remaining[:insert_at] + moving + remaining[insert_at:]
        for index, item in enumerate(reordered):
            item.sort_order = index
        self.save_workspaces()

    def rename_workspace(self, workspace_id: uuid.UUID, display_name: str | None) -> Workspace:
        workspace = self.workspace(workspace_id)
        if workspace is None:
            raise WorkspaceError.of(WorkspaceErrorKind.WORKSPACE_NOT_FOUND, str(workspace_id))
        cleaned = (display_name or "").strip()
        workspace.display_name = cleaned or None
        self.save_workspaces()
        return workspace

    def assistant_terminal(self, workspace_id: uuid.UUID) -> TerminalHandle:
        workspace = self._require_rooted(workspace_id)
        return self.terminal_cache.get_or_create_assistant_terminal(
            workspace.id,
            workspace.root_path,
            session_id=workspace.effective_session_id,
        )

    def additional_terminal(self, workspace_id: uuid.UUID, terminal: TerminalSessionState) -> TerminalHandle:
        workspace = self._require_rooted(workspace_id)
        return self.terminal_cache.get_or_create_additional_terminal(
            workspace.id,
            terminal.id,
            terminal.working_directory or workspace.root_path,
            terminal.command,
            terminal.arguments,
        )

    def close_terminal(self, workspace_id: uuid.UUID, terminal_id: uuid.UUID) -> None:
        self.session_state(workspace_id).close_terminal(terminal_id)
        self.terminal_cache.remove_terminal(workspace_id, terminal_id)

    def set_theme(self, theme_id: uuid.UUID) -> Theme:
        theme = self.theme_manager.set_theme(theme_id)
        self.preferences.selected_theme_id = str(theme.id)
        self.save_preferences()
        return theme

    def set_font(self, size: float, family: str | None = None) -> FontSettings:
        font = self.theme_manager.set_font(size, family)
        self.preferences.font_size = font.size
        self.preferences.font_name = font.family
        self.save_preferences()
        return font

    async def refresh_diff_stats(self) -> GitDiffStats | None:
        workspace = self.selected_workspace
        if workspace is None or workspace.root_path is None:
            return None
        task = await self._run_tracked(workspace.id, self.git.diff_stats(workspace.root_path))
        if task.cancelled() or self.workspace(workspace.id) is None:
            return None
        stats: GitDiffStats = task.result()
        self.session_state(workspace.id).diff_stats = stats
        return stats

    async def refresh_code_review(self, *, force: bool = False) -> CodeReview | None:
        workspace = self.selected_workspace
        provider = self.hosting_provider
        if workspace is None or provider is None:
            return None
        status = self.session_state(workspace.id).code_review
        if not force and not status.is_stale():
            return status.review
        token = status.begin_fetch(force=force)
        if token is None:
            return status.review

        task = await self._run_tracked(workspace.id, provider.find_code_review_for_workspace(workspace))
        if task.cancelled():
            status.cancel()
            return None
        error = task.exception()
        if isinstance(error, TreehouseError):
            logger.warning("Code review refresh failed workspace=%s error=%s", workspace.name, error.message)
            status.fail_fetch(token, error.message)
            return status.review
        if error is not None:
            status.cancel()
            raise error
        status.finish_fetch(token, task.result())
        return status.review

    async def create_code_review(self, workspace: Workspace) -> str:
        provider = self.hosting_provider
        if provider is None:
            raise HostingError.of(
                HostingErrorKind.NOT_CONFIGURED,
                hint="Set hosting_provider, hosting_url and hosting_token in preferences.",
            )
        root = workspace.root_path
        branch = workspace.current_branch
        if root is None or not branch:
            raise WorkspaceError.of(WorkspaceErrorKind.NO_ROOT_PATH, workspace.effective_name)
        await self.git.push_branch(root, branch)
        remote_url = await self.git.remote_url(root)
        project_path = extract_project_path(remote_url or "")
        url = provider.new_code_review_url(project_path, branch) if project_path else None
        if url is None:
            raise HostingError.of(HostingErrorKind.INVALID_REMOTE_URL, remote_url or str(root))
        logger.info("Code review link ready workspace=%s url=%s", workspace.name, url)
        return url

    def start_background_refresh(
        self,
        *,
        diff_interval: float = DIFF_STATS_REFRESH_SECONDS,
        code_review_interval: float = CODE_REVIEW_REFRESH_SECONDS,
    ) -> list[asyncio.Task[None]]:
        loop = asyncio.get_running_loop()
        self.terminal_cache.bind_loop(loop)
        if any(not task.done() for task in self._background_tasks):
            return list(self._background_tasks)
        self._background_tasks = [
            loop.create_task(self._poll("diff-stats", diff_interval, self.refresh_diff_stats)),
            loop.create_task(self._poll("code-review", code_review_interval, self.refresh_code_review)),
        ]
        return list(self._background_tasks)

    async def shutdown(self) -> None:
        pending: list[asyncio.Future[Any]] = list(self._background_tasks)
        for tasks in self._workspace_tasks.values():
            pending.extend(tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background_tasks = []
        self._workspace_tasks.clear()
        self.terminal_cache.close_all()
        self.terminal_cache.bind_loop(None)
        self.save()

    async def _poll(self, name: str, interval: float, action: Callable[[], Awaitable[object]]) -> None:
        while True:
            try:
                await action()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Background refresh failed poller=%s", name)
            await asyncio.sleep(interval)

    async def _run_tracked(self, workspace_id: uuid.UUID, awaitable: Awaitable[Any]) -> asyncio.Future[Any]:
        task = asyncio.ensure_future(awaitable)
        self._workspace_tasks.setdefault(workspace_id, set()).add(task)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            tracked = self._workspace_tasks.get(workspace_id)
            if tracked is not None:
                tracked.discard(task)
                if not tracked:
                    del self._workspace_tasks[workspace_id]
        return task

    async def _cancel_workspace_tasks(self, workspace_id: uuid.UUID) -> None:
        tasks = self._workspace_tasks.pop(workspace_id, set())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _move_to(self, workspace_id: uuid.UUID | None) -> uuid.UUID | None:
        if workspace_id is None:
            return None
        self.selected_workspace_id = workspace_id
        self.preferences.last_selected_workspace_id = str(workspace_id)
        self.terminal_cache.set_active_workspace(workspace_id)
        return workspace_id

    def _require_rooted(self, workspace_id: uuid.UUID) -> Workspace:
        workspace = self.workspace(workspace_id)
        if workspace is None:
            raise WorkspaceError.of(WorkspaceErrorKind.WORKSPACE_NOT_FOUND, str(workspace_id))
        if workspace.root_path is None:
            raise WorkspaceError.of(WorkspaceErrorKind.NO_ROOT_PATH, workspace.effective_name)
        return workspace

    def _restore_selection(self) -> None:
        raw = self.preferences.last_selected_workspace_id
        try:
            wanted = uuid.UUID(raw) if raw else None
        except ValueError:
            wanted = None
        if wanted is not None and self.workspace(wanted) is not None:
            self.selected_workspace_id = wanted
            self.navigation_history.push(wanted)
            self.terminal_cache.set_active_workspace(wanted)
