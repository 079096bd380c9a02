"""User configuration loaded from a TOML file."""

import logging
import tomllib
from importlib import resources
from pathlib import Path

import typer
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from rib.errors import ConfigError
from rib.models.style import NULL_STYLESHEET, Stylesheet

log = logging.getLogger(__name__)

APP_NAME = "rib"
CONFIG_FILE = "config.toml"
LIBRARY_DIR = "library"


def default_config_text() -> str:
    """Contents of the configuration file shipped with the package."""
    return resources.files("rib").joinpath("default_config.toml").read_text(encoding="utf-8")


def default_config_path() -> Path:
    return Path(typer.get_app_dir(APP_NAME)) / CONFIG_FILE


def default_library_path() -> Path:
    return Path(typer.get_app_dir(APP_NAME)) / LIBRARY_DIR


class Config(BaseModel):
    """Settings for one run, passed explicitly to whatever needs them."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    default_browser: str | None = None
    max_cache_books: int = Field(default=50, ge=0)
    max_cache_bytes: int = Field(default=1_000_000_000, ge=0)
    include_index: bool = True
    inject_navigation: bool = True
    default_stylesheet: str = "null"
    stylesheets: dict[str, Stylesheet] = Field(default_factory=lambda: {"null": NULL_STYLESHEET})

    @model_validator(mode="after")
    def _default_stylesheet_exists(self) -> "Config":
        if self.default_stylesheet not in self.stylesheets:
            raise ValueError(f"default_stylesheet '{self.default_stylesheet}' is not defined")
        return self

    def stylesheet(self, name: str | None = None) -> tuple[str, Stylesheet]:
        """Resolve a stylesheet name (or the default) to its profile.

        Raises:
            ConfigError: If no stylesheet has that name.
        """
        name = name or self.default_stylesheet
        try:
            return name, self.stylesheets[name]
        except KeyError:
            known = ", ".join(sorted(self.stylesheets)) or "none"
            raise ConfigError(f"Unknown stylesheet '{name}' (defined: {known})") from None


def parse_config(text: str, source: str = "<config>") -> Config:
    """Validate configuration text.

    Raises:
        ConfigError: If the text isn't valid TOML or holds invalid values.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{source} is not valid TOML: {e}") from e
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigError(f"{source} is invalid: {problems}") from e


def load_config(path: Path | None = None) -> Config:
    """Load the configuration, writing the default file first if it's missing."""
    path = path or default_config_path()
    if not path.exists():
        log.info("No configuration at %s; writing the default one", path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(default_config_text(), encoding="utf-8")
        except OSError as e:
            log.warning("Couldn't write default configuration to %s: %s", path, e)
            return parse_config(default_config_text(), "default configuration")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Couldn't read {path}: {e}") from e
    return parse_config(text, str(path))
