"""Stylesheet profiles injected into rendered books.

Every recognized style property is an explicit optional field, so a
profile with a misspelled or unsupported key fails validation instead of
being ignored. Each property carries its value plus ``override_book``,
which decides whether the injected rule wins over the book's own styling.
"""

import hashlib
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator

# CSS-safe single value: no declaration or block terminators, no markup
CssValue = Annotated[str, Field(min_length=1, pattern=r"^[^;{}<>]+$")]


class _StyleValue(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    override_book: StrictBool = False


class TextValue(_StyleValue):
    value: CssValue


class SizeValue(_StyleValue):
    """Pixel size that must be strictly positive."""

    value: Annotated[StrictInt, Field(gt=0)]


class OffsetValue(_StyleValue):
    """Pixel size that may be zero."""

    value: Annotated[StrictInt, Field(ge=0)]


class SpacingValue(_StyleValue):
    value: Annotated[float, Field(gt=0, le=10)]


class FlagValue(_StyleValue):
    value: StrictBool


class Stylesheet(BaseModel):
    """One named style profile from the configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    font: TextValue | None = None
    font_size: SizeValue | None = None
    text_color: TextValue | None = None
    link_color: TextValue | None = None
    background_color: TextValue | None = None
    line_spacing: SpacingValue | None = None
    indentation: OffsetValue | None = None
    margin_size: OffsetValue | None = None
    max_width: SizeValue | None = None
    limit_image_size_to_viewport_size: FlagValue | None = None
    freeform_css_no_override: str | None = None
    freeform_css_override: str | None = None

    @field_validator("freeform_css_no_override", "freeform_css_override")
    @classmethod
    def _no_markup(cls, value: str | None) -> str | None:
        if value is not None and "<" in value:
            raise ValueError("freeform CSS may not contain '<'")
        return value

    def fingerprint(self) -> str:
        """Stable hash of the profile contents."""
        return hashlib.sha256(self.model_dump_json().encode()).hexdigest()


NULL_STYLESHEET = Stylesheet()
