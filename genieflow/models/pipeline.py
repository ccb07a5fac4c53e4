from __future__ import annotations

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, Field, model_validator

SYSTEM_PROMPT_NODE_ID = "system-prompt"
DEFAULT_MODEL = "claude-sonnet-4-20250514"


class NodeKind(str, Enum):
    SYSTEM_PROMPT = "system_prompt"
    USER_INPUT = "user_input"
    TEXT_INPUT = "text_input"
    URL_LOADER = "url_loader"
    INFERENCE = "inference"
    TEXT_DISPLAY = "text_display"
    COLOR_DISPLAY = "color_display"
    ICON_DISPLAY = "icon_display"
    GAUGE_DISPLAY = "gauge_display"
    PIXEL_ART_DISPLAY = "pixel_art_display"
    WEBHOOK_TRIGGER = "webhook_trigger"
    SURVEY = "survey"
    EMOJI_DISPLAY = "emoji_display"
    GENIE = "genie"


class ContextMode(str, Enum):
    CONTINUE = "continue"
    FRESH = "fresh"


# ── Input nodes ──────────────────────────────────────────────────────

class SystemPromptConfig(BaseModel):
    prompt: str = "You are a helpful assistant."


class UserInputConfig(BaseModel):
    placeholder: str = "Enter your message..."
    default_value: str = ""


class TextInputConfig(BaseModel):
    label: str = ""
    placeholder: str = "Enter text to add to context..."


class URLLoaderConfig(BaseModel):
    url: str = ""


# ── Inference ────────────────────────────────────────────────────────

class InferenceConfig(BaseModel):
    model: str = DEFAULT_MODEL
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, ge=1)
    system_prompt: str | None = Field(
        default=None,
        description="Extra instructions appended to the pipeline system prompt",
    )
    context_mode: ContextMode = ContextMode.CONTINUE


# ── Output-capable displays ──────────────────────────────────────────

class TextDisplayConfig(BaseModel):
    label: str = "Response"


class ColorDisplayConfig(BaseModel):
    name: str | None = Field(default=None, description="Discriminator spliced into the tool name")
    show_hex: bool = True


class IconDisplayConfig(BaseModel):
    name: str | None = None
    size: str = "md"


class GaugeDisplayConfig(BaseModel):
    name: str | None = None
    style: str = "bar"
    show_value: bool = True


class PixelArtDisplayConfig(BaseModel):
    name: str | None = None
    pixel_size: int = 24


class WebhookTriggerConfig(BaseModel):
    name: str | None = None
    show_response: bool = True


class SurveyConfig(BaseModel):
    name: str | None = None
    style: str = "buttons"


class EmojiDisplayConfig(BaseModel):
    name: str | None = None
    size: str = "lg"


# ── Self-inferencing ─────────────────────────────────────────────────

class GenieConfig(BaseModel):
    name: str = "genie"
    system_prompt: str = Field(
        default="You are a helpful genie.",
        description="Backstory / identity text, replaceable by external updates",
    )
    model: str = DEFAULT_MODEL
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, ge=1)
    auto_respond_on_update: bool = False
    include_other_conversations: bool = True


NodeConfig = Union[
    SystemPromptConfig,
    UserInputConfig,
    TextInputConfig,
    URLLoaderConfig,
    InferenceConfig,
    TextDisplayConfig,
    ColorDisplayConfig,
    IconDisplayConfig,
    GaugeDisplayConfig,
    PixelArtDisplayConfig,
    WebhookTriggerConfig,
    SurveyConfig,
    EmojiDisplayConfig,
    GenieConfig,
]

CONFIG_BY_KIND: dict[NodeKind, type[BaseModel]] = {
    NodeKind.SYSTEM_PROMPT: SystemPromptConfig,
    NodeKind.USER_INPUT: UserInputConfig,
    NodeKind.TEXT_INPUT: TextInputConfig,
    NodeKind.URL_LOADER: URLLoaderConfig,
    NodeKind.INFERENCE: InferenceConfig,
    NodeKind.TEXT_DISPLAY: TextDisplayConfig,
    NodeKind.COLOR_DISPLAY: ColorDisplayConfig,
    NodeKind.ICON_DISPLAY: IconDisplayConfig,
    NodeKind.GAUGE_DISPLAY: GaugeDisplayConfig,
    NodeKind.PIXEL_ART_DISPLAY: PixelArtDisplayConfig,
    NodeKind.WEBHOOK_TRIGGER: WebhookTriggerConfig,
    NodeKind.SURVEY: SurveyConfig,
    NodeKind.EMOJI_DISPLAY: EmojiDisplayConfig,
    NodeKind.GENIE: GenieConfig,
}

INPUT_KINDS = frozenset({
    NodeKind.SYSTEM_PROMPT,
    NodeKind.USER_INPUT,
    NodeKind.TEXT_INPUT,
    NodeKind.URL_LOADER,
})
FREE_TEXT_INPUT_KINDS = frozenset({NodeKind.USER_INPUT, NodeKind.TEXT_INPUT})
SELF_INFERENCING_KINDS = frozenset({NodeKind.GENIE})


def default_config(kind: NodeKind) -> NodeConfig:
    """Return the default configuration for a node kind."""
    return CONFIG_BY_KIND[kind]()


class PipelineNode(BaseModel):
    id: str = Field(..., min_length=1, max_length=128, description="Unique node ID within the pipeline")
    kind: NodeKind
    config: NodeConfig

    @model_validator(mode="before")
    @classmethod
    def _coerce_config(cls, data: Any) -> Any:
        # Pick the config model from the kind tag instead of letting the union guess
        if not isinstance(data, dict) or "kind" not in data:
            return data
        try:
            kind = NodeKind(data["kind"])
        except ValueError:
            return data
        config = data.get("config")
        if config is None:
            config = {}
        if isinstance(config, dict):
            data = {**data, "config": CONFIG_BY_KIND[kind].model_validate(config)}
        return data

    @model_validator(mode="after")
    def _check_config_matches_kind(self) -> PipelineNode:
        expected = CONFIG_BY_KIND[self.kind]
        if type(self.config) is not expected:
            raise ValueError(
                f"Node '{self.id}' of kind '{self.kind.value}' needs {expected.__name__}, "
                f"got {type(self.config).__name__}"
            )
        return self


class Pipeline(BaseModel):
    id: str = Field(..., max_length=128, description="Unique pipeline ID")
    nodes: list[PipelineNode]

    @model_validator(mode="after")
    def _check_layout(self) -> Pipeline:
        if not self.nodes:
            raise ValueError("Pipeline must start with the system prompt node")
        first = self.nodes[0]
        if first.id != SYSTEM_PROMPT_NODE_ID or first.kind != NodeKind.SYSTEM_PROMPT:
            raise ValueError(f"First node must be '{SYSTEM_PROMPT_NODE_ID}' of kind system_prompt")
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id: {node.id}")
            seen.add(node.id)
            if node.kind == NodeKind.SYSTEM_PROMPT and node is not first:
                raise ValueError("Only one system prompt node is allowed")
        return self


def new_pipeline(pipeline_id: str, system_prompt: str | None = None) -> Pipeline:
    """Create a pipeline holding only the fixed system prompt node."""
    config = SystemPromptConfig() if system_prompt is None else SystemPromptConfig(prompt=system_prompt)
    return Pipeline(
        id=pipeline_id,
        nodes=[PipelineNode(id=SYSTEM_PROMPT_NODE_ID, kind=NodeKind.SYSTEM_PROMPT, config=config)],
    )
