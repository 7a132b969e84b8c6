from __future__ import annotations

from treehouse.errors import (
    ExitCode,
    GitError,
    GitErrorKind,
    HostingError,
    HostingErrorKind,
    TreehouseError,
    WorkspaceError,
    WorkspaceErrorKind,
    user_facing_error,
)
from treehouse.logging import LOG_LEVELS, configure_logging


def test_exit_codes_are_deterministic() -> None:
    assert int(ExitCode.SUCCESS) == 0
    assert int(ExitCode.INVALID_ARGS) == 2
    assert int(ExitCode.GIT_ERROR) == 5
    assert int(ExitCode.HOSTING_ERROR) == 8


def test_treehouse_error_string_contains_hint() -> None:
    err = TreehouseError("git not found", code=ExitCode.GIT_ERROR, hint="Install git")
    assert "Install git" in str(err)


def test_kind_errors_carry_description_code_and_kind() -> None:
    workspace_error = WorkspaceError.of(WorkspaceErrorKind.SOURCE_REPO_NOT_FOUND, "/nope")
    git_error = GitError.of(GitErrorKind.WORKTREE_CREATION_FAILED, "fatal: already exists")

    assert workspace_error.message == "Source repository not found: /nope"
    assert workspace_error.code == ExitCode.VALIDATION_ERROR
    assert workspace_error.kind == WorkspaceErrorKind.SOURCE_REPO_NOT_FOUND
    assert git_error.message == "Failed to create worktree: fatal: already exists"
    assert git_error.code == ExitCode.GIT_ERROR
    assert isinstance(git_error, TreehouseError)


def test_hosting_api_error_includes_status() -> None:
    err = HostingError.of(HostingErrorKind.API_ERROR, "Not Found", status=404)

    assert err.status == 404
    assert err.message == "API error (404): Not Found"
    assert err.code == ExitCode.HOSTING_ERROR


def test_user_facing_error_template() -> None:
    text = user_facing_error("Workspace not found", hint="Run treehouse list")
    assert text.startswith("Error:")
    assert "Next step" in text
    assert user_facing_error("Boom") == "Error: Boom."


def test_logging_levels() -> None:
    logger = configure_logging("WARN")
    assert logger.level == LOG_LEVELS["WARN"]
