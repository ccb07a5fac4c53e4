"""Structured outputs written into output-capable nodes.

Each model doubles as the validator for the matching tool payload: a
payload that fails validation is rejected whole and never partially stored.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"
_HEX_COLOR_RE = re.compile(HEX_COLOR_PATTERN)

ICON_IDS = (
    "sun",
    "cloud",
    "rain",
    "snow",
    "storm",
    "moon",
    "star",
    "heart",
    "fire",
    "leaf",
    "check",
    "x",
    "alert",
    "info",
    "question",
    "smile",
    "frown",
    "zap",
)

IconId = Literal[
    "sun", "cloud", "rain", "snow", "storm", "moon", "star", "heart", "fire",
    "leaf", "check", "x", "alert", "info", "question", "smile", "frown", "zap",
]

WEBHOOK_METHODS = ("GET", "POST", "PUT", "DELETE")

PIXEL_ART_MIN_SIDE = 32
PIXEL_ART_MAX_SIDE = 128
PIXEL_ART_MAX_COLORS = 32
TRANSPARENT = "transparent"

SURVEY_MIN_OPTIONS = 2
SURVEY_MAX_OPTIONS = 6

# One emoji may span several code points (ZWJ sequences, skin tones, flags)
EMOJI_MAX_LENGTH = 16


class OutputType(str, Enum):
    COLOR = "color"
    ICON = "icon"
    GAUGE = "gauge"
    PIXEL_ART = "pixel_art"
    WEBHOOK = "webhook"
    SURVEY = "survey"
    EMOJI = "emoji"
    TEXT = "text"


class TextOutput(BaseModel):
    content: str


class ColorOutput(BaseModel):
    hex: str = Field(..., pattern=HEX_COLOR_PATTERN)
    name: str | None = None
    explanation: str | None = None


class IconOutput(BaseModel):
    id: IconId
    label: str | None = None
    explanation: str | None = None


class GaugeOutput(BaseModel):
    value: float
    min: float | None = None
    max: float | None = None
    unit: str | None = None
    label: str | None = None
    explanation: str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _numeric_only(cls, v: Any) -> Any:
        # "42" or True must not slip through as a number
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("value must be a number")
        return v


class PixelArtOutput(BaseModel):
    colors: dict[str, str]
    grid: list[str]
    explanation: str | None = None

    @field_validator("colors")
    @classmethod
    def _check_palette(cls, colors: dict[str, str]) -> dict[str, str]:
        if not colors:
            raise ValueError("palette is empty")
        if len(colors) > PIXEL_ART_MAX_COLORS:
            raise ValueError(f"palette has {len(colors)} codes, max is {PIXEL_ART_MAX_COLORS}")
        for code, color in colors.items():
            if len(code) != 1:
                raise ValueError(f"palette code {code!r} must be a single character")
            if color != TRANSPARENT and not _HEX_COLOR_RE.match(color):
                raise ValueError(f"palette color {color!r} is neither a hex color nor {TRANSPARENT!r}")
        return colors

    @model_validator(mode="after")
    def _check_grid(self) -> PixelArtOutput:
        height = len(self.grid)
        if not PIXEL_ART_MIN_SIDE <= height <= PIXEL_ART_MAX_SIDE:
            raise ValueError(f"grid height {height} outside {PIXEL_ART_MIN_SIDE}-{PIXEL_ART_MAX_SIDE}")
        width = len(self.grid[0])
        if any(len(row) != width for row in self.grid):
            raise ValueError("grid rows have unequal length")
        if not PIXEL_ART_MIN_SIDE <= width <= PIXEL_ART_MAX_SIDE:
            raise ValueError(f"grid width {width} outside {PIXEL_ART_MIN_SIDE}-{PIXEL_ART_MAX_SIDE}")
        unknown = {ch for row in self.grid for ch in row} - set(self.colors)
        if unknown:
            raise ValueError(f"grid uses codes missing from the palette: {sorted(unknown)}")
        return self


class WebhookOutput(BaseModel):
    url: str
    method: Literal["GET", "POST", "PUT", "DELETE"]
    headers: dict[str, Any] | None = None
    body: dict[str, Any] | None = None
    explanation: str | None = None

    @field_validator("url")
    @classmethod
    def _check_uri(cls, url: str) -> str:
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"not a valid URI: {url!r}")
        return url


class EmojiOutput(BaseModel):
    emoji: str
    explanation: str | None = None

    @field_validator("emoji")
    @classmethod
    def _check_emoji(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("emoji is empty")
        if len(v) > EMOJI_MAX_LENGTH or any(ch.isspace() or (ch.isascii() and ch.isalpha()) for ch in v):
            raise ValueError(f"not a single emoji: {v!r}")
        return v


class SurveyOption(BaseModel):
    id: str
    label: str


class SurveyOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str
    options: list[SurveyOption] = Field(..., min_length=SURVEY_MIN_OPTIONS, max_length=SURVEY_MAX_OPTIONS)
    allow_multiple: bool | None = Field(default=None, alias="allowMultiple")
    explanation: str | None = None


NodeOutput = Union[
    TextOutput,
    ColorOutput,
    IconOutput,
    GaugeOutput,
    PixelArtOutput,
    WebhookOutput,
    SurveyOutput,
    EmojiOutput,
]

OUTPUT_MODEL_BY_TYPE: dict[OutputType, type[BaseModel]] = {
    OutputType.COLOR: ColorOutput,
    OutputType.ICON: IconOutput,
    OutputType.GAUGE: GaugeOutput,
    OutputType.PIXEL_ART: PixelArtOutput,
    OutputType.WEBHOOK: WebhookOutput,
    OutputType.SURVEY: SurveyOutput,
    OutputType.EMOJI: EmojiOutput,
    OutputType.TEXT: TextOutput,
}
