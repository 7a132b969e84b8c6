"""User preference loading/saving."""

from __future__ import annotations

import json
import logging as py_logging
import os
import uuid
from contextlib import suppress
from pathlib import Path
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

from treehouse.constants import DEFAULT_ASSISTANT_BINARY, DEFAULT_LOGIN_SHELL, DEFAULT_TERMINAL_CACHE_CAPACITY
from treehouse.theme import LIGHT_THEME_ID, Theme

logger = py_logging.getLogger(__name__)

DEFAULT_PREFERENCES_PATH = Path("~/.config/treehouse/preferences.json").expanduser()
PREFERENCES_KEY = "com.treehouse.preferences"
HOSTING_TOKEN_ENV = "TREEHOUSE_HOSTING_TOKEN"
DEFAULT_ROOT_DIRECTORY = "~/.treehouse"
DEFAULT_BRANCH_PREFIX = "treehouse"

EditorChoice = Literal["Cursor", "Zed", "VS Code", "iTerm2", "Terminal", "Finder"]
ProviderChoice = Literal["GitLab", "GitHub"]

_VALID_EDITORS = {"Cursor", "Zed", "VS Code", "iTerm2", "Terminal", "Finder"}
_VALID_PROVIDERS = {"GitLab", "GitHub"}


def _default_shell() -> str:
    return os.environ.get("SHELL", "") or DEFAULT_LOGIN_SHELL


class Preferences(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    root_directory: str = DEFAULT_ROOT_DIRECTORY
    branch_name_prefix: str = DEFAULT_BRANCH_PREFIX
    recent_repositories: list[str] = Field(default_factory=list)
    max_recent_repos: int = Field(default=10, ge=1, le=100)
    recently_used_names: list[str] = Field(default_factory=list)
    max_name_history: int = Field(default=50, ge=1, le=500)
    preferred_editor: EditorChoice = "Cursor"
    default_shell: str = Field(default_factory=_default_shell)
    hosting_provider: ProviderChoice = "GitLab"
    hosting_url: str = ""
    hosting_token: str = ""
    last_selected_workspace_id: str = ""
    custom_themes: list[dict[str, object]] = Field(default_factory=list)
    selected_theme_id: str = str(LIGHT_THEME_ID)
    is_left_pane_visible: bool = True
    is_right_pane_visible: bool = True
    is_bottom_panel_expanded: bool = False
    bottom_panel_height: float | None = None
    font_size: float = Field(default=13.0, gt=0, le=96)
    font_name: str | None = None
    assistant_binary: str = DEFAULT_ASSISTANT_BINARY
    terminal_cache_capacity: int = Field(default=DEFAULT_TERMINAL_CACHE_CAPACITY, ge=1, le=64)

    @field_validator("branch_name_prefix")
    @classmethod
    def _validate_prefix(cls, value: str) -> str:
        cleaned = value.strip().strip("/")
        if not cleaned or " " in cleaned:
            raise ValueError(f"Invalid branch prefix: {value}")
        return cleaned

    @property
    def root_path(self) -> Path:
        return Path(self.root_directory).expanduser()

    def add_recent_repository(self, path: str | Path) -> None:
        value = str(path)
        entries = [item for item in self.recent_repositories if item != value]
        entries.insert(0, value)
        self.recent_repositories = entries[: self.max_recent_repos]

    def add_used_name(self, name: str) -> None:
        entries = [item for item in self.recently_used_names if item != name]
        entries.insert(0, name)
        self.recently_used_names = entries[: self.max_name_history]

    def themes(self) -> list[Theme]:
        parsed: list[Theme] = []
        for raw in self.custom_themes:
            try:
                parsed.append(Theme.from_dict(raw))
            except Exception as exc:
                logger.warning("Skipping unreadable custom theme error=%s", exc)
        return parsed

    def selected_theme_uuid(self) -> uuid.UUID | None:
        try:
            return uuid.UUID(self.selected_theme_id)
        except ValueError:
            return None


def get_preferences_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_PREFERENCES_PATH
    return Path(path).expanduser()


def _normalize_string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    normalized: list[str] = []
    seen: set[str] = set()
    for item in value:
        if not isinstance(item, str):
            continue
        entry = item.strip()
        if not entry or entry in seen:
            continue
        seen.add(entry)
        normalized.append(entry)
    return normalized


def _normalize_themes(value: object) -> list[dict[str, object]]:
    if not isinstance(value, list):
        return []
    normalized: list[dict[str, object]] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        try:
            theme = Theme.from_dict(cast(dict[str, object], item))
        except Exception:
            continue
        normalized.append(theme.to_dict())
    return normalized


def _sanitize(raw: dict[str, object]) -> Preferences:
    prefs = Preferences()

    for key in ("root_directory", "hosting_url", "hosting_token", "default_shell", "assistant_binary"):
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            setattr(prefs, key, value.strip())

    prefix = raw.get("branch_name_prefix")
    if isinstance(prefix, str):
        with suppress(ValueError):
            prefs.branch_name_prefix = prefix

    max_recent_repos = raw.get("max_recent_repos")
    if isinstance(max_recent_repos, int) and 1 <= max_recent_repos <= 100:
        prefs.max_recent_repos = max_recent_repos

    max_name_history = raw.get("max_name_history")
    if isinstance(max_name_history, int) and 1 <= max_name_history <= 500:
        prefs.max_name_history = max_name_history

    prefs.recent_repositories = _normalize_string_list(raw.get("recent_repositories"))[
        : prefs.max_recent_repos
    ]
    prefs.recently_used_names = _normalize_string_list(raw.get("recently_used_names"))[
        : prefs.max_name_history
    ]

    editor = raw.get("preferred_editor")
    if isinstance(editor, str) and editor in _VALID_EDITORS:
        prefs.preferred_editor = cast(EditorChoice, editor)

    provider = raw.get("hosting_provider")
    if isinstance(provider, str) and provider in _VALID_PROVIDERS:
        prefs.hosting_provider = cast(ProviderChoice, provider)

    env_token = os.getenv(HOSTING_TOKEN_ENV, "").strip()
    if env_token:
        prefs.hosting_token = env_token

    last_selected = raw.get("last_selected_workspace_id")
    if isinstance(last_selected, str):
        prefs.last_selected_workspace_id = last_selected.strip()

    prefs.custom_themes = _normalize_themes(raw.get("custom_themes"))

    selected_theme_id = raw.get("selected_theme_id")
    if isinstance(selected_theme_id, str):
        with suppress(ValueError):
            prefs.selected_theme_id = str(uuid.UUID(selected_theme_id))

    for key in ("is_left_pane_visible", "is_right_pane_visible", "is_bottom_panel_expanded"):
        value = raw.get(key)
        if isinstance(value, bool):
            setattr(prefs, key, value)

    height = raw.get("bottom_panel_height")
    if isinstance(height, (int, float)) and not isinstance(height, bool) and height > 0:
        prefs.bottom_panel_height = float(height)

    font_size = raw.get("font_size")
    if isinstance(font_size, (int, float)) and not isinstance(font_size, bool) and 0 < font_size <= 96:
        prefs.font_size = float(font_size)

    font_name = raw.get("font_name")
    if isinstance(font_name, str) and font_name.strip():
        prefs.font_name = font_name.strip()

    capacity = raw.get("terminal_cache_capacity")
    if isinstance(capacity, int) and not isinstance(capacity, bool) and 1 <= capacity <= 64:
        prefs.terminal_cache_capacity = capacity

    return prefs


def load_preferences(path: str | Path | None = None) -> Preferences:
    resolved = get_preferences_path(path)
    if not resolved.exists():
        return _sanitize({})
    try:
        document = json.loads(resolved.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
        logger.warning("Preferences unreadable path=%s error=%s; using defaults", resolved, exc)
        return _sanitize({})
    if not isinstance(document, dict):
        return _sanitize({})
    raw = document.get(PREFERENCES_KEY)
    if not isinstance(raw, dict):
        return _sanitize({})
    return _sanitize(raw)


def save_preferences(preferences: Preferences, path: str | Path | None = None) -> Path:
    resolved = get_preferences_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    payload = preferences.model_dump(mode="json")
    if os.getenv(HOSTING_TOKEN_ENV, "").strip():
        payload["hosting_token"] = ""
    resolved.write_text(
        json.dumps({PREFERENCES_KEY: payload}, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
