"""Persistent terminal cache package."""

from .assistant import AssistantSessions, project_dir_name
from .cache import TerminalCache
from .models import CachedTerminal, CacheKey, TerminalEvent, TerminalState
from .pty_backend import PtyBackend, TerminalHandle, build_launch_command, build_shell_target

__all__ = [
    "AssistantSessions",
    "build_launch_command",
    "build_shell_target",
    "CachedTerminal",
    "CacheKey",
    "project_dir_name",
    "PtyBackend",
    "TerminalCache",
    "TerminalEvent",
    "TerminalHandle",
    "TerminalState",
]
