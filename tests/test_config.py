from __future__ import annotations

from pathlib import Path

import pytest

from rib.config import Config, default_config_text, load_config, parse_config
from rib.errors import ConfigError
from rib.models.style import NULL_STYLESHEET


def test_missing_config_is_created_from_default(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.toml"

    config = load_config(path)

    assert path.read_text(encoding="utf-8") == default_config_text()
    assert config.max_cache_books == 50
    assert config.max_cache_bytes == 1_000_000_000
    assert config.default_browser is None
    assert config.include_index and config.inject_navigation
    assert set(config.stylesheets) == {"null", "basalt"}


def test_default_stylesheets_resolve() -> None:
    config = parse_config(default_config_text())

    name, null = config.stylesheet()
    assert name == "null"
    assert null == NULL_STYLESHEET

    _, basalt = config.stylesheet("basalt")
    assert basalt.font_size.value == 16
    assert basalt.limit_image_size_to_viewport_size.override_book is True


def test_values_and_stylesheets_from_file(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        """
default_browser = "firefox --new-window"
max_cache_books = 0
default_stylesheet = "sepia"

[stylesheets.sepia]
freeform_css_no_override = "p { hyphens: auto; }"

[stylesheets.sepia.background_color]
value = "#f4ecd8"
override_book = true
""",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.default_browser == "firefox --new-window"
    assert config.max_cache_books == 0
    name, style = config.stylesheet()
    assert name == "sepia"
    assert style.background_color.value == "#f4ecd8"
    assert style.background_color.override_book is True


@pytest.mark.parametrize(
    "text",
    [
        "max_cache_books = [",
        "max_cache_books = -1",
        "max_cache_bytes = 'lots'",
        "unknown_key = 1",
        "default_stylesheet = 'missing'",
    ],
)
def test_invalid_config_is_rejected(text: str) -> None:
    with pytest.raises(ConfigError):
        parse_config(text)


def _with_profile(body: str) -> str:
    return f"default_stylesheet = 'custom'\n[stylesheets.custom]\n{body}\n"


def test_valid_profile_parses() -> None:
    config = parse_config(_with_profile("font_size = { value = 12 }\nline_spacing = { value = 1.4 }"))

    _, style = config.stylesheet()
    assert style.font_size.value == 12
    assert style.line_spacing.value == 1.4


@pytest.mark.parametrize(
    "body",
    [
        "font_size = { value = 0 }",
        "font_size = { value = 12.5 }",
        "line_spacing = { value = -1.0 }",
        "text_colour = { value = 'red' }",
        "text_color = { value = 'red; }' }",
        "text_color = { value = 'red', override_book = 'yes' }",
        "text_color = { value = 'red', important = true }",
        "freeform_css_override = '</style>'",
    ],
)
def test_invalid_profile_is_rejected(body: str) -> None:
    with pytest.raises(ConfigError):
        parse_config(_with_profile(body))


def test_unknown_stylesheet_name_is_a_config_error() -> None:
    with pytest.raises(ConfigError) as excinfo:
        Config().stylesheet("nope")

    assert "nope" in str(excinfo.value)
    assert "null" in str(excinfo.value)


def test_error_names_the_file(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("max_cache_books = -5\n", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_config(path)

    assert str(path) in str(excinfo.value)
    assert "max_cache_books" in str(excinfo.value)
