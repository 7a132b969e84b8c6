"""Workspace domain models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from typing_extensions import TypedDict


class WorkspaceRepositoryDict(TypedDict):
    id: str
    source_repo_path: str
    worktree_path: str
    branch_name: str
    is_main_repo: bool
    created_at: str


class WorkspaceDict(TypedDict):
    id: str
    name: str
    display_name: str | None
    repositories: list[WorkspaceRepositoryDict]
    assistant_session_id: str | None
    is_active: bool
    sort_order: int
    created_at: str
    last_accessed_at: str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: object) -> datetime:
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return utcnow()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return utcnow()


@dataclass
class WorkspaceRepository:
    source_repo_path: Path
    worktree_path: Path
    branch_name: str
    is_main_repo: bool = True
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> WorkspaceRepositoryDict:
        return {
            "id": str(self.id),
            "source_repo_path": str(self.source_repo_path),
            "worktree_path": str(self.worktree_path),
            "branch_name": self.branch_name,
            "is_main_repo": self.is_main_repo,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> WorkspaceRepository:
        return cls(
            id=uuid.UUID(str(raw["id"])),
            source_repo_path=Path(str(raw["source_repo_path"])),
            worktree_path=Path(str(raw["worktree_path"])),
            branch_name=str(raw["branch_name"]),
            is_main_repo=bool(raw.get("is_main_repo", True)),
            created_at=_parse_time(raw.get("created_at")),
        )


@dataclass
class Workspace:
    name: str
    repositories: list[WorkspaceRepository]
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    display_name: str | None = None
    assistant_session_id: uuid.UUID | None = None
    is_active: bool = False
    sort_order: int = 0
    created_at: datetime = field(default_factory=utcnow)
    last_accessed_at: datetime = field(default_factory=utcnow)

    @classmethod
    def with_repository(cls, name: str, repository: WorkspaceRepository, *, sort_order: int = 0) -> Workspace:
        return cls(name=name, repositories=[repository], sort_order=sort_order)

    @property
    def effective_name(self) -> str:
        return self.display_name or self.name

    @property
    def effective_session_id(self) -> uuid.UUID:
        return self.assistant_session_id or self.id

    @property
    def primary_repository(self) -> WorkspaceRepository | None:
        for repository in self.repositories:
            if repository.is_main_repo:
                return repository
        return self.repositories[0] if self.repositories else None

    @property
    def root_path(self) -> Path | None:
        primary = self.primary_repository
        return primary.worktree_path if primary else None

    @property
    def current_branch(self) -> str | None:
        primary = self.primary_repository
        return primary.branch_name if primary else None

    def validate_primary(self) -> list[str]:
        """Describe primary-repository problems; an empty list means the layout is sound."""
        problems: list[str] = []
        marked = [repo for repo in self.repositories if repo.is_main_repo]
        if not self.repositories:
            problems.append("workspace has no repositories")
        elif not marked:
            problems.append("no repository is marked primary; the first one is used")
        elif len(marked) > 1:
            problems.append(f"{len(marked)} repositories are marked primary; the first marked one is used")
        return problems

    def to_dict(self) -> WorkspaceDict:
        return {
            "id": str(self.id),
            "name": self.name,
            "display_name": self.display_name,
            "repositories": [repo.to_dict() for repo in self.repositories],
            "assistant_session_id": str(self.assistant_session_id) if self.assistant_session_id else None,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> Workspace:
        repositories_raw = raw.get("repositories")
        repositories = [
            WorkspaceRepository.from_dict(item)
            for item in (repositories_raw if isinstance(repositories_raw, list) else [])
            if isinstance(item, dict)
        ]
        session_raw = raw.get("assistant_session_id")
        display_name = raw.get("display_name")
        sort_order = raw.get("sort_order", 0)
        return cls(
            id=uuid.UUID(str(raw["id"])),
            name=str(raw["name"]),
            display_name=display_name if isinstance(display_name, str) and display_name else None,
            repositories=repositories,
            assistant_session_id=uuid.UUID(session_raw) if isinstance(session_raw, str) and session_raw else None,
            is_active=bool(raw.get("is_active", False)),
            sort_order=sort_order if isinstance(sort_order, int) else 0,
            created_at=_parse_time(raw.get("created_at")),
            last_accessed_at=_parse_time(raw.get("last_accessed_at")),
        )


class WorkspaceNavigationHistory:
    """Browser-style back/forward stack over workspace ids."""

    def __init__(self) -> None:
        self._history: list[uuid.UUID] = []
        self._cursor = -1

    @property
    def entries(self) -> list[uuid.UUID]:
        return list(self._history)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def can_go_back(self) -> bool:
        return self._cursor > 0

    @property
    def can_go_forward(self) -> bool:
        return self._cursor < len(self._history) - 1

    @property
    def current(self) -> uuid.UUID | None:
        if 0 <= self._cursor < len(self._history):
            return self._history[self._cursor]
        return None

    def push(self, workspace_id: uuid.UUID) -> None:
        if self.current == workspace_id:
            return
        del self._history[self._cursor + 1 :]
        self._history.append(workspace_id)
        self._cursor = len(self._history) - 1

    def go_back(self) -> uuid.UUID | None:
        if not self.can_go_back:
            return None
        self._cursor -= 1
        return self._history[self._cursor]

    def go_forward(self) -> uuid.UUID | None:
        if not self.can_go_forward:
            return None
        self._cursor += 1
        return self._history[self._cursor]

    def remove(self, workspace_id: uuid.UUID) -> None:
        self._history = [item for item in self._history if item != workspace_id]
        self._cursor = min(self._cursor, len(self._history) - 1)
