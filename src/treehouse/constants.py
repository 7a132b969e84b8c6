"""Shared constants for workspace, terminal and refresh behaviour."""

from __future__ import annotations

import re

# =============================================================================
# TERMINAL CACHE
# =============================================================================

DEFAULT_TERMINAL_CACHE_CAPACITY: int = 10
ASSISTANT_ROLE: str = "assistant"
DEFAULT_LOGIN_SHELL: str = "/bin/zsh"
DEFAULT_ASSISTANT_BINARY: str = "claude"
DEFAULT_ASSISTANT_HOME: str = "~/.claude"
TERMINAL_ENV_OVERRIDES: dict[str, str] = {
    "TERM": "xterm-256color",
    "LANG": "en_US.UTF-8",
}
PTY_READ_CHUNK_BYTES: int = 4096

# =============================================================================
# REFRESH INTERVALS
# =============================================================================

CODE_REVIEW_STALENESS_SECONDS: float = 30.0
DIFF_STATS_REFRESH_SECONDS: float = 5.0
CODE_REVIEW_REFRESH_SECONDS: float = 60.0
GIT_COMMAND_TIMEOUT_SECONDS: float = 60.0

# =============================================================================
# WORKSPACE LAYOUT
# =============================================================================

ARCHIVE_DIR_NAME: str = ".archived"
ARCHIVE_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%S"
WORKSPACES_FILE_NAME: str = "workspaces.json"
DEFAULT_REMOTE: str = "origin"
DEFAULT_START_POINT: str = "origin/main"

# =============================================================================
# LIMIT CONSTANTS
# =============================================================================

TERMINAL_LOG_TRUNCATE_LIMIT: int = 320
DEFAULT_LOG_TRUNCATE_LIMIT: int = 700

# =============================================================================
# REGEX PATTERNS (compiled at module level)
# =============================================================================

AUTH_BEARER_PATTERN: re.Pattern[str] = re.compile(
    r"(Authorization:\s*Bearer)\s+\S+",
    re.IGNORECASE,
)

PRIVATE_TOKEN_PATTERN: re.Pattern[str] = re.compile(
    r"(PRIVATE-TOKEN:)\s*\S+",
    re.IGNORECASE,
)

URL_CREDENTIAL_PATTERN: re.Pattern[str] = re.compile(
    r"(https?://)([^/\s:@]+):([^@\s]+)@",
)

GH_TOKEN_PATTERN: re.Pattern[str] = re.compile(
    r"\bgh[pousr]_[A-Za-z0-9_]{36,}\b",
)

GITLAB_TOKEN_PATTERN: re.Pattern[str] = re.compile(
    r"\bglpat-[A-Za-z0-9_-]{20,}\b",
)

HEX_COLOR_PATTERN: re.Pattern[str] = re.compile(r"^#?[0-9A-Fa-f]{6}$")
