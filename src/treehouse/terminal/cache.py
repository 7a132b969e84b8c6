"""Bounded cache of long-lived terminal processes keyed by workspace and role."""

from __future__ import annotations

import asyncio
import logging as py_logging
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable, Iterator
from pathlib import Path

from treehouse.constants import DEFAULT_TERMINAL_CACHE_CAPACITY
from treehouse.errors import ExitCode, TreehouseError
from treehouse.terminal.assistant import AssistantSessions
from treehouse.terminal.models import CachedTerminal, CacheKey, TerminalEvent, TerminalState
from treehouse.terminal.pty_backend import (
    PtyBackend,
    TerminalHandle,
    build_launch_command,
    build_shell_target,
    login_shell,
    terminal_environment,
)
from treehouse.theme import LIGHT_THEME, FontSettings, Theme, ThemeManager, contrasting_color

logger = py_logging.getLogger(__name__)

Clock = Callable[[], float]


class TerminalCache:
    """Keeps terminals alive across workspace switches.

    Entries belonging to the active workspace are never evicted. When every
    entry belongs to it, the cache is allowed to grow past its capacity.

    Entries are only touched from the thread that built the cache. Process
    exits reported by PTY reader threads are handed to the bound event loop,
    or queued and applied on the next cache call when no loop is running.
    """

    def __init__(
        self,
        *,
        backend: PtyBackend | None = None,
        capacity: int = DEFAULT_TERMINAL_CACHE_CAPACITY,
        assistant: AssistantSessions | None = None,
        theme_manager: ThemeManager | None = None,
        shell: str | None = None,
        env: dict[str, str] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        clock: Clock | None = None,
    ) -> None:
        if capacity < 1:
            raise TreehouseError(
                f"Invalid terminal cache capacity: {capacity}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use a capacity of at least 1.",
            )
        self.capacity = capacity
        self.shell = shell
        self._backend = backend or PtyBackend()
        self._backend.on_exit = self._on_process_exit
        self._assistant = assistant or AssistantSessions()
        self._env = env
        self._loop = loop
        self._clock = clock or time.monotonic
        self._control_thread = threading.get_ident()
        self._pending_exits: deque[str] = deque()
        self._entries: dict[CacheKey, CachedTerminal] = {}
        self._events: list[TerminalEvent] = []
        self.active_workspace_id: uuid.UUID | None = None

        self._theme: Theme = LIGHT_THEME
        self._font = FontSettings(size=13.0)
        self._unsubscribers: list[Callable[[], None]] = []
        if theme_manager is not None:
            self._theme = theme_manager.current_theme
            self._font = theme_manager.font
            self._unsubscribers.append(theme_manager.subscribe_theme(self.apply_theme))
            self._unsubscribers.append(
                theme_manager.subscribe_font(lambda font: self.apply_font(font.size, font.family))
            )

    def __len__(self) -> int:
        self.process_pending_exits()
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        self.process_pending_exits()
        return key in self._entries

    def keys(self) -> list[CacheKey]:
        self.process_pending_exits()
        return list(self._entries)

    def entry(self, key: CacheKey) -> CachedTerminal | None:
        self.process_pending_exits()
        return self._entries.get(key)

    def entries_for(self, workspace_id: uuid.UUID) -> Iterator[tuple[CacheKey, CachedTerminal]]:
        return ((key, value) for key, value in list(self._entries.items()) if key.workspace_id == workspace_id)

    def list_events(self) -> list[TerminalEvent]:
        return list(self._events)

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        self._loop = loop

    def set_active_workspace(self, workspace_id: uuid.UUID | None) -> None:
        self.active_workspace_id = workspace_id

    def has_assistant_terminal(self, workspace_id: uuid.UUID) -> bool:
        self.process_pending_exits()
        return CacheKey.assistant(workspace_id) in self._entries

    def get_or_create_assistant_terminal(
        self,
        workspace_id: uuid.UUID,
        working_directory: str | Path,
        *,
        session_id: uuid.UUID | str | None = None,
    ) -> TerminalHandle:
        key = CacheKey.assistant(workspace_id)
        cached = self._lookup(key)
        if cached is not None:
            return cached.handle
        sid = str(session_id or workspace_id).lower()
        command = self._assistant_command(Path(working_directory), sid)
        return self._insert(key, command, Path(working_directory), is_assistant=True, session_id=sid)

    def get_or_create_additional_terminal(
        self,
        workspace_id: uuid.UUID,
        terminal_id: uuid.UUID | str,
        working_directory: str | Path,
        command: str | None = None,
        arguments: list[str] | tuple[str, ...] = (),
    ) -> TerminalHandle:
        key = CacheKey.additional(workspace_id, terminal_id)
        cached = self._lookup(key)
        if cached is not None:
            return cached.handle
        target = build_shell_target(command or self.shell or login_shell(), arguments)
        launch = build_launch_command(working_directory, target, shell=self.shell)
        return self._insert(key, launch, Path(working_directory), is_assistant=False)

    def remove_terminal(self, workspace_id: uuid.UUID, terminal_id: uuid.UUID | str) -> None:
        self.process_pending_exits()
        self._discard(CacheKey.additional(workspace_id, terminal_id), TerminalState.REMOVED)

    def remove_all_terminals(self, workspace_id: uuid.UUID) -> None:
        self.process_pending_exits()
        for key, _ in self.entries_for(workspace_id):
            self._discard(key, TerminalState.REMOVED)

    def restart_assistant(self, workspace_id: uuid.UUID, working_directory: str | Path) -> TerminalHandle | None:
        self.process_pending_exits()
        key = CacheKey.assistant(workspace_id)
        entry = self._entries.get(key)
        if entry is None or entry.state.is_final:
            return None
        entry.state = TerminalState.RESTARTING
        if self._backend.is_running(key.session_key):
            self._backend.stop(key.session_key)
        entry.working_directory = Path(working_directory)
        self._respawn(key, entry, reason="Assistant restart requested.")
        return entry.handle

    def apply_theme(self, theme: Theme) -> None:
        self.process_pending_exits()
        self._theme = theme
        for entry in self._entries.values():
            self._paint(entry)
        logger.debug("Applied theme name=%s terminals=%s", theme.name, len(self._entries))

    def apply_font(self, size: float, family: str | None = None) -> None:
        self._font = FontSettings(size=size, family=family)
        for entry in self._entries.values():
            entry.handle.font_size = size
            entry.handle.font_family = family
        logger.debug("Applied font size=%s family=%s terminals=%s", size, family, len(self._entries))

    def close_all(self) -> None:
        self._pending_exits.clear()
        for entry in self._entries.values():
            entry.state = TerminalState.REMOVED
        self._entries.clear()
        self._backend.stop_all()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _lookup(self, key: CacheKey) -> CachedTerminal | None:
        self.process_pending_exits()
        entry = self._entries.get(key)
        if entry is None:
            return None
        entry.touch(self._clock())
        return entry

    def _insert(
        self,
        key: CacheKey,
        command: list[str],
        working_directory: Path,
        *,
        is_assistant: bool,
        session_id: str = "",
    ) -> TerminalHandle:
        if self._loop is None or self._loop.is_closed():
            self._loop = _running_loop()
        self._evict_if_needed()
        handle = TerminalHandle(session_key=key.session_key, backend=self._backend)
        entry = CachedTerminal(
            handle=handle,
            is_assistant=is_assistant,
            working_directory=working_directory,
            command=tuple(command),
            session_id=session_id,
            last_accessed_at=self._clock(),
        )
        self._paint(entry)
        handle.font_size = self._font.size
        handle.font_family = self._font.family
        self._entries[key] = entry
        try:
            self._backend.start(
                key.session_key,
                command,
                cwd=str(working_directory),
                env=terminal_environment(self._env),
            )
        except TreehouseError:
            del self._entries[key]
            raise
        if entry.state == TerminalState.CREATING:
            entry.state = TerminalState.LIVE
        self._record(key, "create", f"Started {'assistant' if is_assistant else 'terminal'} in {working_directory}.")
        return handle

    def _evict_if_needed(self) -> None:
        if len(self._entries) < self.capacity:
            return
        candidates = [
            (key, entry) for key, entry in self._entries.items() if key.workspace_id != self.active_workspace_id
        ]
        if not candidates:
            logger.info(
                "Terminal cache over capacity size=%s capacity=%s; all entries belong to the active workspace",
                len(self._entries),
                self.capacity,
            )
            return
        oldest_key, _ = min(candidates, key=lambda item: item[1].last_accessed_at)
        self._discard(oldest_key, TerminalState.EVICTED)

    def _discard(self, key: CacheKey, final_state: TerminalState) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        entry.state = final_state
        if self._backend.is_running(key.session_key):
            self._backend.stop(key.session_key)
        self._record(key, final_state.value, f"Terminal {final_state.value}.")

    def _assistant_command(self, working_directory: Path, session_id: str) -> list[str]:
        return build_launch_command(
            working_directory,
            self._assistant.target_command(session_id),
            shell=self.shell,
        )

    def _respawn(self, key: CacheKey, entry: CachedTerminal, *, reason: str) -> None:
        command = self._assistant_command(entry.working_directory, entry.session_id or str(key.workspace_id))
        entry.command = tuple(command)
        try:
            self._backend.start(
                key.session_key,
                command,
                cwd=str(entry.working_directory),
                env=terminal_environment(self._env),
            )
        except TreehouseError as exc:
            entry.state = TerminalState.EXITED
            self._record(key, "restart-failed", exc.message)
            logger.error("Assistant restart failed key=%s error=%s", key.session_key, exc)
            return
        entry.state = TerminalState.LIVE
        entry.restart_count += 1
        self._record(key, "restart", reason)

    def process_pending_exits(self) -> int:
        """Apply exits queued by reader threads. Must run on the control thread."""
        handled = 0
        while self._pending_exits:
            self._handle_exit(self._pending_exits.popleft())
            handled += 1
        return handled

    def _on_process_exit(self, session_key: str) -> None:
        if threading.get_ident() == self._control_thread:
            self._handle_exit(session_key)
            return
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(self._handle_exit, session_key)
                return
            except RuntimeError:
                # Loop closed between the check and the call.
                pass
        self._pending_exits.append(session_key)

    def _handle_exit(self, session_key: str) -> None:
        key = next((item for item in self._entries if item.session_key == session_key), None)
        if key is None:
            return
        entry = self._entries[key]
        if entry.state.is_final or entry.state == TerminalState.EXITED:
            return
        if entry.is_assistant:
            entry.state = TerminalState.RESTARTING
            self._respawn(key, entry, reason="Assistant process exited; restarted.")
            return
        entry.state = TerminalState.EXITED
        self._record(key, "exit", "Terminal process exited.")

    def _paint(self, entry: CachedTerminal) -> None:
        background = (
            self._theme.central_terminal_background if entry.is_assistant else self._theme.right_terminal_background
        )
        entry.handle.background = background
        entry.handle.foreground = contrasting_color(background)

    def _record(self, key: CacheKey, step: str, message: str) -> None:
        self._events.append(TerminalEvent(key=key.session_key, step=step, message=message))
        logger.info("terminal-event key=%s step=%s message=%s", key.session_key, step, message)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
