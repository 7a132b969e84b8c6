from __future__ import annotations

import uuid

import pytest

from treehouse.errors import ExitCode, TreehouseError
from treehouse.theme import (
    DARK_THEME,
    DARK_THEME_ID,
    LIGHT_THEME,
    LIGHT_THEME_ID,
    FontSettings,
    Theme,
    ThemeManager,
    contrasting_color,
    normalize_hex,
)


def test_normalize_hex_adds_hash_and_uppercases() -> None:
    assert normalize_hex("1e1e1e") == "#1E1E1E"
    assert normalize_hex(" #abcdef ") == "#ABCDEF"


@pytest.mark.parametrize("value", ["", "#12345", "#GGGGGG", "red"])
def test_normalize_hex_rejects_invalid_values(value: str) -> None:
    with pytest.raises(TreehouseError) as exc_info:
        normalize_hex(value)

    assert exc_info.value.code == ExitCode.VALIDATION_ERROR


def test_contrasting_color_picks_black_or_white() -> None:
    assert contrasting_color(LIGHT_THEME.central_terminal_background) == "#000000"
    assert contrasting_color(DARK_THEME.central_terminal_background) == "#FFFFFF"


def test_theme_dict_roundtrip_and_missing_field() -> None:
    custom = DARK_THEME.duplicate("Night")

    restored = Theme.from_dict(custom.to_dict())
    broken = custom.to_dict()
    broken.pop("right_toolbar_background")

    assert restored == custom
    assert restored.is_built_in is False
    assert restored.id != DARK_THEME_ID
    with pytest.raises(TreehouseError) as exc_info:
        Theme.from_dict(broken)
    assert exc_info.value.code == ExitCode.CONFIG_ERROR


def test_manager_defaults_to_light_and_lists_builtins_first() -> None:
    manager = ThemeManager()

    assert manager.current_theme == LIGHT_THEME
    assert [theme.id for theme in manager.all_themes] == [LIGHT_THEME_ID, DARK_THEME_ID]
    assert manager.custom_themes == []


def test_unknown_selected_theme_falls_back_to_light() -> None:
    manager = ThemeManager(selected_theme_id=uuid.uuid4())

    assert manager.current_theme.id == LIGHT_THEME_ID


def test_set_theme_notifies_subscribers_until_unsubscribed() -> None:
    manager = ThemeManager()
    seen: list[str] = []
    unsubscribe = manager.subscribe_theme(lambda theme: seen.append(theme.name))

    manager.set_theme(DARK_THEME_ID)
    unsubscribe()
    manager.set_theme(LIGHT_THEME_ID)

    assert seen == ["Dark"]
    assert manager.current_theme.id == LIGHT_THEME_ID


def test_set_theme_rejects_unknown_id() -> None:
    manager = ThemeManager()

    with pytest.raises(TreehouseError):
        manager.set_theme(uuid.uuid4())


def test_builtin_themes_cannot_be_updated_or_deleted() -> None:
    manager = ThemeManager()
    tampered = Theme(**{**LIGHT_THEME.__dict__, "central_terminal_background": "#FF0000"})

    manager.update_theme(tampered)
    manager.delete_theme(LIGHT_THEME_ID)

    assert manager.all_themes[0] == LIGHT_THEME


def test_deleting_current_custom_theme_falls_back_to_light() -> None:
    manager = ThemeManager()
    custom = manager.add_theme(DARK_THEME.duplicate("Night"))
    manager.set_theme(custom.id)
    seen: list[uuid.UUID] = []
    manager.subscribe_theme(lambda theme: seen.append(theme.id))

    manager.delete_theme(custom.id)

    assert manager.current_theme.id == LIGHT_THEME_ID
    assert seen == [LIGHT_THEME_ID]
    assert manager.custom_themes == []


def test_updating_current_custom_theme_notifies() -> None:
    custom = DARK_THEME.duplicate("Night")
    manager = ThemeManager(custom_themes=[custom], selected_theme_id=custom.id)
    seen: list[str] = []
    manager.subscribe_theme(lambda theme: seen.append(theme.central_terminal_background))

    manager.update_theme(Theme(**{**custom.__dict__, "central_terminal_background": "#101010"}))

    assert seen == ["#101010"]


def test_set_font_validates_and_notifies() -> None:
    manager = ThemeManager()
    seen: list[FontSettings] = []
    manager.subscribe_font(seen.append)

    manager.set_font(16.0, "Menlo")

    assert seen == [FontSettings(size=16.0, family="Menlo")]
    with pytest.raises(TreehouseError):
        manager.set_font(0)
