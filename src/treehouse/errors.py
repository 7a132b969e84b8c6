"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    GIT_ERROR = 5
    TERMINAL_ERROR = 6
    VALIDATION_ERROR = 7
    HOSTING_ERROR = 8


@dataclass
class TreehouseError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


class WorkspaceErrorKind(str, Enum):
    NO_ROOT_PATH = "no_root_path"
    WORKSPACE_NOT_FOUND = "workspace_not_found"
    SOURCE_REPO_NOT_FOUND = "source_repo_not_found"
    FAILED_TO_CREATE_DIRECTORY = "failed_to_create_directory"
    FAILED_TO_OPEN_EDITOR = "failed_to_open_editor"


class GitErrorKind(str, Enum):
    NOT_A_REPOSITORY = "not_a_repository"
    WORKTREE_CREATION_FAILED = "worktree_creation_failed"
    WORKTREE_REMOVAL_FAILED = "worktree_removal_failed"
    COMMAND_FAILED = "command_failed"
    BRANCH_ALREADY_EXISTS = "branch_already_exists"


class HostingErrorKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    INVALID_REMOTE_URL = "invalid_remote_url"
    NETWORK_ERROR = "network_error"
    API_ERROR = "api_error"


_WORKSPACE_MESSAGES = {
    WorkspaceErrorKind.NO_ROOT_PATH: "Workspace has no root path",
    WorkspaceErrorKind.WORKSPACE_NOT_FOUND: "Workspace not found",
    WorkspaceErrorKind.SOURCE_REPO_NOT_FOUND: "Source repository not found",
    WorkspaceErrorKind.FAILED_TO_CREATE_DIRECTORY: "Failed to create directory",
    WorkspaceErrorKind.FAILED_TO_OPEN_EDITOR: "Failed to open editor",
}

_GIT_MESSAGES = {
    GitErrorKind.NOT_A_REPOSITORY: "The specified path is not a git repository",
    GitErrorKind.WORKTREE_CREATION_FAILED: "Failed to create worktree",
    GitErrorKind.WORKTREE_REMOVAL_FAILED: "Failed to remove worktree",
    GitErrorKind.COMMAND_FAILED: "Git command failed",
    GitErrorKind.BRANCH_ALREADY_EXISTS: "Branch already exists",
}

_HOSTING_MESSAGES = {
    HostingErrorKind.NOT_CONFIGURED: "Git hosting is not configured",
    HostingErrorKind.INVALID_REMOTE_URL: "Could not parse project from git remote URL",
    HostingErrorKind.NETWORK_ERROR: "Network error",
    HostingErrorKind.API_ERROR: "API error",
}


def _describe(base: str, detail: str) -> str:
    if detail:
        return f"{base}: {detail}"
    return base


@dataclass
class WorkspaceError(TreehouseError):
    kind: WorkspaceErrorKind = WorkspaceErrorKind.WORKSPACE_NOT_FOUND

    @classmethod
    def of(cls, kind: WorkspaceErrorKind, detail: str = "", *, hint: str = "") -> WorkspaceError:
        return cls(
            _describe(_WORKSPACE_MESSAGES[kind], detail),
            code=ExitCode.VALIDATION_ERROR,
            hint=hint,
            kind=kind,
        )


@dataclass
class GitError(TreehouseError):
    kind: GitErrorKind = GitErrorKind.COMMAND_FAILED

    @classmethod
    def of(cls, kind: GitErrorKind, detail: str = "", *, hint: str = "") -> GitError:
        return cls(
            _describe(_GIT_MESSAGES[kind], detail),
            code=ExitCode.GIT_ERROR,
            hint=hint,
            kind=kind,
        )


@dataclass
class HostingError(TreehouseError):
    kind: HostingErrorKind = HostingErrorKind.NETWORK_ERROR
    status: int | None = field(default=None)

    @classmethod
    def of(
        cls,
        kind: HostingErrorKind,
        detail: str = "",
        *,
        status: int | None = None,
        hint: str = "",
    ) -> HostingError:
        base = _HOSTING_MESSAGES[kind]
        if kind == HostingErrorKind.API_ERROR and status is not None:
            base = f"{base} ({status})"
        return cls(
            _describe(base, detail),
            code=ExitCode.HOSTING_ERROR,
            hint=hint,
            kind=kind,
            status=status,
        )


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
