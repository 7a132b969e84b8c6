"""Theme catalogue and appearance change fan-out."""

from __future__ import annotations

import logging as py_logging
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, fields, replace

from treehouse.constants import HEX_COLOR_PATTERN
from treehouse.errors import ExitCode, TreehouseError

logger = py_logging.getLogger(__name__)

LIGHT_THEME_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
DARK_THEME_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")

_BLACK = "#000000"
_WHITE = "#FFFFFF"


def normalize_hex(value: str) -> str:
    text = value.strip()
    if not HEX_COLOR_PATTERN.match(text):
        raise TreehouseError(
            f"Invalid colour: {value!r}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Use the #RRGGBB format.",
        )
    if not text.startswith("#"):
        text = f"#{text}"
    return text.upper()


def hex_to_rgb(value: str) -> tuple[float, float, float]:
    text = normalize_hex(value)[1:]
    raw = int(text, 16)
    return (
        ((raw >> 16) & 0xFF) / 255.0,
        ((raw >> 8) & 0xFF) / 255.0,
        (raw & 0xFF) / 255.0,
    )


def contrasting_color(background: str) -> str:
    """Black or white, whichever reads better on ``background``."""
    red, green, blue = hex_to_rgb(background)
    luminance = 0.299 * red + 0.587 * green + 0.114 * blue
    return _BLACK if luminance > 0.5 else _WHITE


@dataclass(frozen=True)
class Theme:
    id: uuid.UUID
    name: str
    is_built_in: bool
    central_terminal_background: str
    right_terminal_background: str
    left_pane_background: str
    left_workspace_list_background: str
    right_file_manager_background: str
    right_changes_background: str
    right_checks_background: str
    central_toolbar_background: str
    right_toolbar_background: str

    def __post_init__(self) -> None:
        for item in fields(self):
            if item.name.endswith("_background"):
                object.__setattr__(self, item.name, normalize_hex(getattr(self, item.name)))

    def duplicate(self, new_name: str) -> Theme:
        return replace(self, id=uuid.uuid4(), name=new_name, is_built_in=False)

    def to_dict(self) -> dict[str, object]:
        payload = asdict(self)
        payload["id"] = str(self.id)
        return payload

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> Theme:
        values: dict[str, object] = {}
        for item in fields(cls):
            if item.name not in raw:
                raise TreehouseError(
                    f"Theme is missing field: {item.name}",
                    code=ExitCode.CONFIG_ERROR,
                    hint="Re-create the custom theme.",
                )
            values[item.name] = raw[item.name]
        values["id"] = uuid.UUID(str(values["id"]))
        values["is_built_in"] = bool(values["is_built_in"])
        return cls(**values)  # type: ignore[arg-type]


LIGHT_THEME = Theme(
    id=LIGHT_THEME_ID,
    name="Light",
    is_built_in=True,
    central_terminal_background="#FFFFFF",
    right_terminal_background="#FFFFFF",
    left_pane_background="#F5F5F5",
    left_workspace_list_background="#F5F5F5",
    right_file_manager_background="#FFFFFF",
    right_changes_background="#FFFFFF",
    right_checks_background="#FFFFFF",
    central_toolbar_background="#ECECEC",
    right_toolbar_background="#FFFFFF",
)

DARK_THEME = Theme(
    id=DARK_THEME_ID,
    name="Dark",
    is_built_in=True,
    central_terminal_background="#1E1E1E",
    right_terminal_background="#1E1E1E",
    left_pane_background="#252526",
    left_workspace_list_background="#252526",
    right_file_manager_background="#1E1E1E",
    right_changes_background="#1E1E1E",
    right_checks_background="#1E1E1E",
    central_toolbar_background="#3C3C3C",
    right_toolbar_background="#252526",
)

BUILT_IN_THEMES: tuple[Theme, ...] = (LIGHT_THEME, DARK_THEME)


@dataclass(frozen=True)
class FontSettings:
    size: float
    family: str | None = None


ThemeObserver = Callable[[Theme], None]
FontObserver = Callable[[FontSettings], None]


class ThemeManager:
    """Owns the current theme and font, and notifies subscribers when they change.

    Subscribers are plain callables. ``subscribe_theme``/``subscribe_font``
    return a function that removes the subscription again.
    """

    def __init__(
        self,
        *,
        custom_themes: list[Theme] | None = None,
        selected_theme_id: uuid.UUID | None = None,
        font: FontSettings | None = None,
    ) -> None:
        self._themes: list[Theme] = list(BUILT_IN_THEMES)
        self._current: Theme = LIGHT_THEME
        self._font = font or FontSettings(size=13.0)
        self._theme_observers: list[ThemeObserver] = []
        self._font_observers: list[FontObserver] = []
        self.load(custom_themes or [], selected_theme_id)

    @property
    def current_theme(self) -> Theme:
        return self._current

    @property
    def font(self) -> FontSettings:
        return self._font

    @property
    def all_themes(self) -> list[Theme]:
        return list(self._themes)

    @property
    def custom_themes(self) -> list[Theme]:
        return [theme for theme in self._themes if not theme.is_built_in]

    def load(self, custom_themes: list[Theme], selected_theme_id: uuid.UUID | None) -> None:
        self._themes = list(BUILT_IN_THEMES) + [
            replace(theme, is_built_in=False) for theme in custom_themes
        ]
        selected = self._find(selected_theme_id) if selected_theme_id else None
        self._current = selected or LIGHT_THEME
        self._notify_theme()

    def set_theme(self, theme_id: uuid.UUID) -> Theme:
        found = self._find(theme_id)
        if found is None:
            raise TreehouseError(
                f"Theme not found: {theme_id}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Pick one of the listed themes.",
            )
        self._current = found
        logger.info("Theme selected id=%s name=%s", found.id, found.name)
        self._notify_theme()
        return found

    def add_theme(self, theme: Theme) -> Theme:
        added = replace(theme, is_built_in=False)
        self._themes.append(added)
        return added

    def update_theme(self, theme: Theme) -> None:
        if theme.is_built_in:
            return
        for index, existing in enumerate(self._themes):
            if existing.id != theme.id:
                continue
            if existing.is_built_in:
                return
            self._themes[index] = theme
            if self._current.id == theme.id:
                self._current = theme
                self._notify_theme()
            return

    def delete_theme(self, theme_id: uuid.UUID) -> None:
        found = self._find(theme_id)
        if found is None or found.is_built_in:
            return
        self._themes = [theme for theme in self._themes if theme.id != theme_id]
        if self._current.id == theme_id:
            self._current = LIGHT_THEME
            self._notify_theme()

    def set_font(self, size: float, family: str | None = None) -> FontSettings:
        if size <= 0:
            raise TreehouseError(
                f"Invalid font size: {size}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use a positive point size.",
            )
        self._font = FontSettings(size=size, family=family or None)
        for observer in list(self._font_observers):
            observer(self._font)
        return self._font

    def subscribe_theme(self, observer: ThemeObserver) -> Callable[[], None]:
        self._theme_observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._theme_observers:
                self._theme_observers.remove(observer)

        return unsubscribe

    def subscribe_font(self, observer: FontObserver) -> Callable[[], None]:
        self._font_observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._font_observers:
                self._font_observers.remove(observer)

        return unsubscribe

    def _find(self, theme_id: uuid.UUID | None) -> Theme | None:
        for theme in self._themes:
            if theme.id == theme_id:
                return theme
        return None

    def _notify_theme(self) -> None:
        for observer in list(self._theme_observers):
            observer(self._current)
