"""Per-workspace UI session state that survives workspace switches."""

from __future__ import annotations

import itertools
import os
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from treehouse.constants import CODE_REVIEW_STALENESS_SECONDS, DEFAULT_LOGIN_SHELL
from treehouse.git.service import GitDiffStats
from treehouse.hosting.base import CodeReview


def _default_command() -> str:
    return os.environ.get("SHELL", "") or DEFAULT_LOGIN_SHELL


class RightPaneTab(str, Enum):
    FILES = "All files"
    CHANGES = "Changes"
    CHECKS = "Checks"


@dataclass
class TerminalSessionState:
    title: str = "Terminal"
    working_directory: Path | None = None
    command: str = field(default_factory=_default_command)
    arguments: list[str] = field(default_factory=list)
    is_running: bool = False
    id: uuid.UUID = field(default_factory=uuid.uuid4)


class CodeReviewStatus:
    """Last known code review plus an in-flight guard for background fetches.

    Every started fetch gets a monotonically increasing token. Only the holder
    of the newest token may record a result, so a slow response can never
    overwrite a newer one.
    """

    def __init__(self, ttl: float = CODE_REVIEW_STALENESS_SECONDS) -> None:
        self.ttl = ttl
        self.review: CodeReview | None = None
        self.error: str | None = None
        self.fetched_at: float | None = None
        self.is_fetching = False
        self._tokens = itertools.count(1)
        self._current_token: int | None = None

    def is_stale(self, now: float | None = None) -> bool:
        if self.fetched_at is None:
            return True
        current = time.monotonic() if now is None else now
        return current - self.fetched_at >= self.ttl

    def begin_fetch(self, *, force: bool = False) -> int | None:
        if self.is_fetching and not force:
            return None
        self.is_fetching = True
        self._current_token = next(self._tokens)
        return self._current_token

    def finish_fetch(self, token: int, review: CodeReview | None, *, now: float | None = None) -> bool:
        if token != self._current_token:
            return False
        self.review = review
        self.error = None
        self._complete(now)
        return True

    def fail_fetch(self, token: int, error: str, *, now: float | None = None) -> bool:
        if token != self._current_token:
            return False
        self.error = error
        self._complete(now)
        return True

    def cancel(self) -> None:
        self.is_fetching = False
        self._current_token = None

    def _complete(self, now: float | None) -> None:
        self.fetched_at = time.monotonic() if now is None else now
        self.is_fetching = False
        self._current_token = None


class WorkspaceSessionState:
    def __init__(self, workspace_id: uuid.UUID, *, shell: str | None = None) -> None:
        self.id = workspace_id
        self.shell = shell
        self.assistant_terminal: TerminalSessionState | None = None
        self.additional_terminals: list[TerminalSessionState] = []
        self.selected_terminal_id: uuid.UUID | None = None
        self.selected_right_pane_tab = RightPaneTab.FILES
        self.open_files: list[Path] = []
        self.selected_file: Path | None = None
        self.code_review = CodeReviewStatus()
        self.diff_stats = GitDiffStats()

    def create_terminal(self, working_directory: Path | None, title: str = "Terminal") -> TerminalSessionState:
        terminal = TerminalSessionState(
            title=title,
            working_directory=working_directory,
            command=self.shell or _default_command(),
        )
        self.additional_terminals.append(terminal)
        self.selected_terminal_id = terminal.id
        return terminal

    def close_terminal(self, terminal_id: uuid.UUID) -> None:
        self.additional_terminals = [item for item in self.additional_terminals if item.id != terminal_id]
        if self.selected_terminal_id == terminal_id:
            self.selected_terminal_id = self.additional_terminals[-1].id if self.additional_terminals else None

    def terminal(self, terminal_id: uuid.UUID) -> TerminalSessionState | None:
        for item in self.additional_terminals:
            if item.id == terminal_id:
                return item
        return None

    def open_file(self, path: Path) -> None:
        if path not in self.open_files:
            self.open_files.append(path)
        self.selected_file = path

    def close_file(self, path: Path) -> None:
        if path not in self.open_files:
            return
        index = self.open_files.index(path)
        self.open_files.remove(path)
        if self.selected_file == path:
            if self.open_files:
                self.selected_file = self.open_files[min(index, len(self.open_files) - 1)]
            else:
                self.selected_file = None
