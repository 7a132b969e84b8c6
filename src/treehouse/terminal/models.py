"""Terminal cache domain models."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from treehouse.constants import ASSISTANT_ROLE

if TYPE_CHECKING:
    from treehouse.terminal.pty_backend import TerminalHandle


class TerminalState(str, Enum):
    CREATING = "creating"
    LIVE = "live"
    RESTARTING = "restarting"
    EXITED = "exited"
    EVICTED = "evicted"
    REMOVED = "removed"

    @property
    def is_final(self) -> bool:
        return self in (TerminalState.EVICTED, TerminalState.REMOVED)


@dataclass(frozen=True)
class CacheKey:
    workspace_id: uuid.UUID
    role: str

    @classmethod
    def assistant(cls, workspace_id: uuid.UUID) -> CacheKey:
        return cls(workspace_id, ASSISTANT_ROLE)

    @classmethod
    def additional(cls, workspace_id: uuid.UUID, terminal_id: uuid.UUID | str) -> CacheKey:
        return cls(workspace_id, str(terminal_id))

    @property
    def is_assistant(self) -> bool:
        return self.role == ASSISTANT_ROLE

    @property
    def session_key(self) -> str:
        return f"{self.workspace_id}:{self.role}"


@dataclass
class CachedTerminal:
    handle: TerminalHandle
    is_assistant: bool
    working_directory: Path
    command: tuple[str, ...] = ()
    session_id: str = ""
    state: TerminalState = TerminalState.CREATING
    last_accessed_at: float = field(default_factory=time.monotonic)
    restart_count: int = 0

    def touch(self, now: float | None = None) -> None:
        self.last_accessed_at = time.monotonic() if now is None else now


@dataclass(frozen=True)
class TerminalEvent:
    key: str
    step: str
    message: str

